from linkauth.models.schema.magic_link import MagicLinkEntry
from linkauth.models.schema.session import SessionEntry
from linkauth.models.schema.user import UserEntry


class Databases:
    session = SessionEntry
    magic_link = MagicLinkEntry
    user = UserEntry
