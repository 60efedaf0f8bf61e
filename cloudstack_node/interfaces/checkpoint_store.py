from __future__ import annotations

from abc import ABC, abstractmethod

from cloudstack_node.entities.event import Checkpoint


class CheckpointStore(ABC):
    """Durable home of the event checkpoint and the usage baseline.

    Loads treat missing state as empty; saves either land completely or
    leave the previous value in place.
    """

    @abstractmethod
    def load_checkpoint(self) -> Checkpoint | None:
        raise NotImplementedError

    @abstractmethod
    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        raise NotImplementedError

    @abstractmethod
    def load_baseline(self) -> dict[str, int]:
        raise NotImplementedError

    @abstractmethod
    def save_baseline(self, usage: dict[str, int]) -> None:
        raise NotImplementedError
