"""Datastore — async SQLAlchemy persistence for durable bridge state."""

from l2_bridge.datastore.client import Datastore
from l2_bridge.datastore.models import Base, KeyValueEntry

__all__ = ["Base", "Datastore", "KeyValueEntry"]
