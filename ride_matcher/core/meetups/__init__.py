# ride_matcher/core/meetups/__init__.py
from ride_matcher.core.meetups.models import CreateMeetupRequest, InviteSource, Meetup, MeetupInvite

__all__ = ["CreateMeetupRequest", "InviteSource", "Meetup", "MeetupInvite"]
