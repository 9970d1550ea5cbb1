"""HTTP facade for the two-step payment verification."""
