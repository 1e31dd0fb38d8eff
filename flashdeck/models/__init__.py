# Package marker
# Importing the modules registers every table on Base.metadata
from flashdeck.models.user import User  # noqa
from flashdeck.models.pack import Pack  # noqa
from flashdeck.models.flashcard import Flashcard  # noqa
from flashdeck.models.account_request import AccountRequest  # noqa
from flashdeck.models.message import Message, MessageRead  # noqa
