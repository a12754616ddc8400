"""Infrastructure programs shipped with infragraph."""
