from dataclasses import dataclass, field
from typing import Dict, Generic, List, TypeVar

T = TypeVar("T")


@dataclass
class BestEffortResult(Generic[T]):
	"""Outcome of an operation allowed to partially succeed.

	``succeeded`` holds what went through; ``errors`` maps each item that did
	not to a short reason. The parent operation never fails because of it.
	"""

	succeeded: List[T] = field(default_factory=list)
	errors: Dict[str, str] = field(default_factory=dict)

	@property
	def ok(self) -> bool:
		return not self.errors

	def add(self, item: T) -> None:
		self.succeeded.append(item)

	def fail(self, key: str, reason: str) -> None:
		self.errors[key] = reason
