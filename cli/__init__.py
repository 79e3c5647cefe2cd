"""CLI package — click commands with Rich output."""
