"""Pure domain values: periods, clock and the immutable source snapshot."""
