"""Price resolution, discounts and BoQ calculation."""
