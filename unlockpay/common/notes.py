"""Order notes keys that correlate a payment to a user/target pair."""

NOTE_USER_KEY = "userId"
# `guideId` is the key older clients put on contact-unlock orders.
NOTE_TARGET_KEYS = ("targetId", "guideId")


def correlate(notes: dict | None) -> tuple[str | None, str | None]:
    """Return `(user_id, target_id)` from an order's notes map."""

    notes = notes or {}
    user_id = notes.get(NOTE_USER_KEY) or None
    target_id = None
    for key in NOTE_TARGET_KEYS:
        if notes.get(key):
            target_id = notes[key]
            break
    return user_id, target_id
