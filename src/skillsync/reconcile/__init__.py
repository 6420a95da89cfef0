"""Status computation and push / pull / two-way sync planning and apply."""
