"""Back-office modules built on the kernel (payroll / partner compensation)."""
