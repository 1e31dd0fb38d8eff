# flashdeck/realtime/events.py
# Event types pushed over /ws. Clients treat them as "refetch this" hints.

PACK_CREATED = "pack-created"
PACK_UPDATED = "pack-updated"
PACK_DELETED = "pack-deleted"
PACK_RESTORED = "pack-restored"
PACK_PURGED = "pack-purged"

FLASHCARD_CREATED = "flashcard-created"
FLASHCARD_UPDATED = "flashcard-updated"
FLASHCARD_DELETED = "flashcard-deleted"

MESSAGE_RECEIVED = "message-received"
NOTIFICATIONS_UPDATED = "notifications-updated"

USER_UPDATED = "user-updated"
USER_DELETED = "user-deleted"

ACCOUNT_REQUEST_CREATED = "account-request-created"
ACCOUNT_APPROVED = "account-approved"
ACCOUNT_REJECTED = "account-rejected"

PONG = "pong"
