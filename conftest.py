"""Shared pytest fixtures for GuestSnap."""

from datetime import timedelta

import pytest
from django.utils import timezone

from uploads.exceptions import SessionExpiredError
from uploads.services.storage import CompletedObject, SessionOpened


@pytest.fixture
def user(db):
    """Create a test user."""
    from accounts.models import User

    return User.objects.create_user(
        username="testuser",
        email="test@example.com",
        password="testpass123",
    )


class FakeObjectStore:
    """In-memory stand-in for ObjectStore that records every call."""

    def __init__(self, public_domain="media.test"):
        self.public_domain = public_domain
        self.opened = []
        self.signed_parts = []
        self.signed_objects = []
        self.completed = []
        self.aborted = []
        self.sessions = set()
        self.complete_error = None

    def public_url(self, key):
        return f"https://{self.public_domain}/{key}"

    def open_session(self, key, content_type, metadata):
        upload_id = f"upload-{len(self.opened) + 1}"
        self.opened.append(
            {"key": key, "content_type": content_type, "metadata": metadata}
        )
        self.sessions.add(upload_id)
        return SessionOpened(upload_id=upload_id)

    def sign_part_upload(self, key, upload_id, part_number, expires_in):
        self.signed_parts.append((key, upload_id, part_number, expires_in))
        return f"https://storage.test/{key}?partNumber={part_number}&uploadId={upload_id}"

    def sign_whole_object_upload(self, key, content_type, content_length, expires_in):
        self.signed_objects.append((key, content_type, content_length, expires_in))
        return f"https://storage.test/{key}?signed=1"

    def complete_session(self, key, upload_id, parts):
        if self.complete_error is not None:
            raise self.complete_error
        if upload_id not in self.sessions:
            raise SessionExpiredError()
        self.sessions.discard(upload_id)
        self.completed.append((key, upload_id, list(parts)))
        return CompletedObject(location=self.public_url(key), etag='"final-2"')

    def abort_session(self, key, upload_id):
        if upload_id not in self.sessions:
            raise SessionExpiredError()
        self.sessions.discard(upload_id)
        self.aborted.append((key, upload_id))


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def other_user(db):
    from accounts.models import User

    return User.objects.create_user(
        username="guest", email="guest@example.com", password="testpass123"
    )


@pytest.fixture
def make_event(user):
    """Factory fixture to create Event instances owned by ``user``."""
    from events.models import Event

    counter = {"n": 0}

    def _make(open_window=True, approve_uploads=False, owner=None):
        counter["n"] += 1
        delta = timedelta(days=1)
        return Event.objects.create(
            owner=owner or user,
            name=f"Party {counter['n']}",
            slug=f"party-{counter['n']}",
            upload_window_end=timezone.now() + (delta if open_window else -delta),
            approve_uploads=approve_uploads,
        )

    return _make


@pytest.fixture
def event(make_event):
    return make_event()


@pytest.fixture
def closed_event(make_event):
    return make_event(open_window=False)
