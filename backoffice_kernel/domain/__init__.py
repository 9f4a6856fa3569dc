"""Pure domain layer: values, commands, calendar arithmetic, clock."""
