# ride_matcher/core/notifications/builders.py
"""
Сборка уведомлений из доменных моделей с локализованным текстом.
Тексты берутся из lang_dict.json; внутренние ошибки в уведомления не попадают.
"""

from __future__ import annotations

from typing import Optional

from ride_matcher.common.localization import get_text
from ride_matcher.core.drivers.models import Driver
from ride_matcher.core.matching.proximity import DriverEta
from ride_matcher.core.meetups.models import Meetup, MeetupInvite
from ride_matcher.core.notifications.payloads import (
    MeetupAllArrivedPayload,
    MeetupCancelledPayload,
    MeetupInviteAcceptedPayload,
    MeetupInviteRejectedPayload,
    NewMeetupInvitePayload,
    NewRideAssignedPayload,
    RideAssignedPayload,
    RideCancelledByClientPayload,
    RideCancelledByDriverPayload,
    RideCancelledByMeetupPayload,
    RideCompletedPayload,
)
from ride_matcher.core.rides.models import Ride


def ride_assigned(
    ride: Ride,
    driver: Driver,
    eta: Optional[DriverEta],
    outside_radius: bool,
    lang: str,
) -> RideAssignedPayload:
    return RideAssignedPayload(
        message=get_text("RIDE_ASSIGNED", lang, driver_name=driver.driver_name),
        ride_id=ride.ride_id,
        driver_id=driver.user_id,
        driver_name=driver.driver_name,
        vehicle_id=driver.vehicle_id,
        contact_number=driver.contact_number,
        driver_distance_km=eta.distance_km if eta else None,
        driver_eta_minutes=eta.eta_minutes if eta else None,
        driver_eta_formatted=eta.eta_formatted if eta else None,
        outside_radius=outside_radius,
    )


def new_ride_assigned(ride: Ride, eta: Optional[DriverEta], lang: str) -> NewRideAssignedPayload:
    return NewRideAssignedPayload(
        message=get_text(
            "NEW_RIDE_ASSIGNED", lang, pickup=ride.pickup_address, dropoff=ride.dropoff_address
        ),
        ride_id=ride.ride_id,
        requester_id=ride.user_id,
        requester_name=ride.user_name,
        pickup_address=ride.pickup_address,
        dropoff_address=ride.dropoff_address,
        pickup_lat=ride.pickup_lat,
        pickup_lng=ride.pickup_lng,
        dropoff_lat=ride.dropoff_lat,
        dropoff_lng=ride.dropoff_lng,
        distance_km=ride.distance_km,
        estimated_fare=ride.estimated_fare,
        ride_class=ride.ride_class.value,
        pickup_distance_km=eta.distance_km if eta else None,
        pickup_eta_minutes=eta.eta_minutes if eta else None,
    )


def ride_completed(ride: Ride, driver_id: int, lang: str) -> RideCompletedPayload:
    return RideCompletedPayload(
        message=get_text("RIDE_COMPLETED", lang, fare=f"{ride.estimated_fare:.2f}"),
        ride_id=ride.ride_id,
        driver_id=driver_id,
        fare=ride.estimated_fare,
    )


def ride_cancelled_by_driver(ride: Ride, driver_id: int, lang: str) -> RideCancelledByDriverPayload:
    return RideCancelledByDriverPayload(
        message=get_text("RIDE_CANCELLED_BY_DRIVER", lang),
        ride_id=ride.ride_id,
        driver_id=driver_id,
    )


def ride_cancelled_by_client(ride: Ride, lang: str) -> RideCancelledByClientPayload:
    return RideCancelledByClientPayload(
        message=get_text("RIDE_CANCELLED_BY_CLIENT", lang, ride_id=ride.ride_id),
        ride_id=ride.ride_id,
        requester_id=ride.user_id,
    )


def ride_cancelled_by_meetup(ride: Ride, meetup: Meetup, reason: str, lang: str) -> RideCancelledByMeetupPayload:
    return RideCancelledByMeetupPayload(
        message=get_text("RIDE_CANCELLED_BY_MEETUP", lang, ride_id=ride.ride_id, reason=reason),
        ride_id=ride.ride_id,
        meetup_id=meetup.meetup_id,
        reason=reason,
    )


def new_meetup_invite(
    meetup: Meetup,
    invite: MeetupInvite,
    organizer_name: str,
    lang: str,
) -> NewMeetupInvitePayload:
    return NewMeetupInvitePayload(
        message=get_text(
            "NEW_MEETUP_INVITE", lang, organizer_name=organizer_name, meetup_address=meetup.meetup_address
        ),
        meetup_id=meetup.meetup_id,
        invite_id=invite.invite_id,
        organizer_name=organizer_name,
        meetup_address=meetup.meetup_address,
    )


def meetup_invite_accepted(
    invite: MeetupInvite,
    invitee_name: str,
    ride: Ride,
    lang: str,
) -> MeetupInviteAcceptedPayload:
    return MeetupInviteAcceptedPayload(
        message=get_text("MEETUP_INVITE_ACCEPTED", lang, invitee_name=invitee_name),
        meetup_id=invite.meetup_id,
        invite_id=invite.invite_id,
        invitee_id=invite.invitee_id,
        invitee_name=invitee_name,
        ride_id=ride.ride_id,
    )


def meetup_invite_rejected(invite: MeetupInvite, invitee_name: str, lang: str) -> MeetupInviteRejectedPayload:
    return MeetupInviteRejectedPayload(
        message=get_text("MEETUP_INVITE_REJECTED", lang, invitee_name=invitee_name),
        meetup_id=invite.meetup_id,
        invite_id=invite.invite_id,
        invitee_id=invite.invitee_id,
        invitee_name=invitee_name,
    )


def meetup_all_arrived(meetup: Meetup, participant_count: int, lang: str) -> MeetupAllArrivedPayload:
    return MeetupAllArrivedPayload(
        message=get_text(
            "MEETUP_ALL_ARRIVED",
            lang,
            participant_count=participant_count,
            meetup_address=meetup.meetup_address,
        ),
        meetup_id=meetup.meetup_id,
        participant_count=participant_count,
        meetup_address=meetup.meetup_address,
    )


def meetup_cancelled(meetup: Meetup, organizer_name: str, reason: str, lang: str) -> MeetupCancelledPayload:
    return MeetupCancelledPayload(
        message=get_text(
            "MEETUP_CANCELLED", lang, organizer_name=organizer_name, meetup_address=meetup.meetup_address
        ),
        meetup_id=meetup.meetup_id,
        meetup_address=meetup.meetup_address,
        organizer_name=organizer_name,
        reason=reason,
    )
