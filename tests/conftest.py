"""
Shared fixtures for couchview tests.

The Post entity mirrors a small blog schema: a title and body, a list of
embedded grants (loaded as dicts) and one embedded stats record (loaded
as a Stats dataclass).
"""

from dataclasses import dataclass

import pytest

from couchview.schema import (
    EmbeddedDef,
    EntityDef,
    ViewRegistry,
    design,
    embeds_many,
    embeds_one,
    field,
    view,
)
from couchview.store import InMemoryStoreClient, emit_field, emit_id


@dataclass
class Stats:
    visits: int = 0
    time: int = 0


GRANT = EmbeddedDef("Grant", fields=(field("user", "string"), field("access", "string")))
STATS = EmbeddedDef(
    "Stats", fields=(field("visits", "integer"), field("time", "integer")), record_type=Stats
)


def make_post() -> EntityDef:
    """Post entity with a secondary design."""
    return EntityDef(
        name="Post",
        source="posts",
        fields=(
            field("title", "string"),
            field("body", "string"),
            embeds_many("grants", GRANT),
            embeds_one("stats", STATS),
        ),
        designs=(
            design("Post", view("by_title", ["string"])),
            design("secondary", view("by_other", ["string"])),
        ),
    )


@pytest.fixture
def post():
    """Post entity definition."""
    return make_post()


@pytest.fixture
def stats_type():
    """Record type of the embedded stats."""
    return Stats


@pytest.fixture
def registry(post):
    """Registry holding the Post entity."""
    registry = ViewRegistry()
    registry.register(post)
    return registry


@pytest.fixture
def store():
    """In-memory store with the posts database and its views."""
    store = InMemoryStoreClient()
    store.create_database("posts")
    store.define_view("posts", "Post", "all", emit_id)
    store.define_view("posts", "Post", "by_title", emit_field("title"))
    store.define_view("posts", "secondary", "by_other", emit_field("other"))
    yield store
    store.close()


@pytest.fixture
def db(store):
    """Handle of the posts database."""
    return store.open("posts")
