"""dg-cal - Disc golf tournament calendar feeds.

This package tracks tournaments published on turniere.discgolf.de, keeps a
versioned history of their changes and renders per-subscriber iCalendar
feeds with registration reminders.
"""

__version__ = "0.1.0"
