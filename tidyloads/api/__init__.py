"""HTTP routers for the organizer control surface."""
