"""Group calendar service: events, groups, invitations and notifications."""
