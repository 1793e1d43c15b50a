"""SAM Picker data engine: ownership and achievement acquisition."""
