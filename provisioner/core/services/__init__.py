"""Domain services: probing, planning, profile editing, preconditions."""
