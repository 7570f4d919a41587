from portid.core.settings import SDK_VERSION as __version__
from portid.errors import *  # noqa: F401,F403
from portid.errors import __all__ as _errors_all
from portid.storage.credential_store import CredentialRecord, CredentialStore
from portid.sync import PortID

__all__ = ["__version__", "PortID", "CredentialRecord", "CredentialStore", *_errors_all]
