"""DashPilot outbound webhook delivery engine."""
