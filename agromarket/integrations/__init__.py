"""External systems: marketplace backend, payment providers, SMS, Sentry."""
