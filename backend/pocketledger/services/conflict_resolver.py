"""
Last-writer-wins conflict resolution between a client version and the
server version of the same record.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

CLIENT_WON = "client_won"
SERVER_WON = "server_won"


class Syncable(Protocol):
    is_deleted: bool
    updated_at: datetime


@dataclass(frozen=True)
class Resolution:
    winner: Any
    resolution: str
    reason: str

    @property
    def client_won(self) -> bool:
        return self.resolution == CLIENT_WON


def resolve(client_record: Syncable, server_record: Syncable) -> Resolution:
    """
    Pick the version to keep.

    Rules, in order:
    1. Both deleted: the client wins only with a strictly newer timestamp.
    2. Otherwise the strictly newer ``updated_at`` wins.
    3. Equal timestamps: the server wins, so replaying the same push
       always converges to the same state.
    """
    client_time = client_record.updated_at
    server_time = server_record.updated_at

    if client_record.is_deleted and server_record.is_deleted:
        if client_time > server_time:
            return Resolution(client_record, CLIENT_WON, "Both deleted, client timestamp newer")
        return Resolution(server_record, SERVER_WON, "Both deleted, server timestamp newer or equal")

    if client_time > server_time:
        return Resolution(client_record, CLIENT_WON, "Client timestamp newer")
    if server_time > client_time:
        return Resolution(server_record, SERVER_WON, "Server timestamp newer")
    return Resolution(server_record, SERVER_WON, "Same timestamp, server is source of truth")
