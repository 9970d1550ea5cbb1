"""Browser automation for the payment portal — driver interface, launcher, state machine."""
