"""Remote stores for edit sessions."""

from edit_sessions.storage.codec import decode_session, encode_session
from edit_sessions.storage.factory import open_store
from edit_sessions.storage.gist import GistStore
from edit_sessions.storage.local import LocalFileSystemStore
from edit_sessions.storage.protocol import EditSessionStore

__all__ = ['EditSessionStore', 'GistStore', 'LocalFileSystemStore', 'decode_session', 'encode_session', 'open_store']
