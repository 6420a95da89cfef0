"""Skill discovery: source loading, tool install scanning and per-tool rendering.

A skill is a directory holding a ``SKILL.md`` file with YAML frontmatter
(``name`` and ``description`` are required) followed by a Markdown body. The
source copy is a Jinja2 template rendered with ``{tool: <id>}`` before it is
installed into a tool directory.
"""
