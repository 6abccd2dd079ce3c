"""
Lunaxcode - Project onboarding backend.

Hosts the onboarding wizard API (see the `onboarding` package) plus the
shared app shell: settings, Supabase access, auth and the CLI.
"""

__version__ = "1.0.0"
