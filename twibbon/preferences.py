"""
Per-client preferences, injected into the app instead of read from globals.

Only the webview dialog's "don't show again" flag lives here today.
"""

import threading

WEBVIEW_DIALOG_DISMISSED = 'webview-dialog-dismissed'


class PreferenceStore:
    def get(self, key):
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError


class MemoryPreferenceStore:
    """Process-local store keyed by (client id, key)."""

    def __init__(self):
        self._values = {}
        self._lock = threading.Lock()

    def for_client(self, client_id):
        return ClientPreferences(self, client_id)

    def get(self, client_id, key):
        with self._lock:
            return self._values.get((client_id, key))

    def set(self, client_id, key, value):
        with self._lock:
            self._values[(client_id, key)] = value


class ClientPreferences(PreferenceStore):
    """One client's view of a shared store."""

    def __init__(self, backend, client_id):
        self.backend = backend
        self.client_id = client_id

    def get(self, key):
        return self.backend.get(self.client_id, key)

    def set(self, key, value):
        self.backend.set(self.client_id, key, value)


def should_show_webview_dialog(is_webview, prefs):
    return bool(is_webview) and prefs.get(WEBVIEW_DIALOG_DISMISSED) != 'true'


def dismiss_webview_dialog(prefs):
    prefs.set(WEBVIEW_DIALOG_DISMISSED, 'true')
