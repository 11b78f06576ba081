"""Pure domain types for insertion orders. ZERO I/O."""
