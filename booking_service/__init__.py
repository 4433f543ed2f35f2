"""Square booking service: customer bookings, payment links and webhook reconciliation."""
