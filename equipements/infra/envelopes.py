# equipements/infra/envelopes.py
"""
Normalisation des enveloppes de collection renvoyées par l'API.

Les listes arrivent sous deux formes :
- ``{success, message?, data: [...]}`` pour la plupart des ressources ;
- ``{data: [...], current_page, last_page, per_page, total, ...}`` pour
  les produits (paginés), parfois imbriqué dans ``data``.
``ResourceCollection.from_envelope`` ramène les deux à un seul contrat.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar


T = TypeVar("T")


@dataclass
class ResourceCollection(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    current_page: int = 1
    last_page: int = 1
    per_page: Optional[int] = None
    message: Optional[str] = None

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def has_more(self) -> bool:
        return self.current_page < self.last_page

    @classmethod
    def from_envelope(
        cls,
        envelope: Any,
        factory: Optional[Callable[[Dict[str, Any]], T]] = None,
    ) -> "ResourceCollection[T]":
        """Construit une collection depuis n'importe quelle forme de réponse.

        Args:
            envelope: Réponse décodée (dict, liste ou ``None``).
            factory: Conversion optionnelle de chaque élément (ex. ``Domain.from_api``).
        """
        if envelope is None:
            return cls()
        if isinstance(envelope, list):
            page: Dict[str, Any] = {"data": envelope}
        elif isinstance(envelope, dict):
            page = envelope
            # pagination imbriquée : {success, data: {data: [...], current_page...}}
            inner = envelope.get("data")
            if isinstance(inner, dict) and isinstance(inner.get("data"), list):
                page = inner
        else:
            return cls()

        raw_items = page.get("data")
        if not isinstance(raw_items, list):
            raw_items = []
        items = [factory(r) for r in raw_items] if factory else list(raw_items)
        total = page.get("total")
        return cls(
            items=items,
            total=int(total) if total is not None else len(items),
            current_page=int(page.get("current_page") or 1),
            last_page=int(page.get("last_page") or 1),
            per_page=page.get("per_page"),
            message=envelope.get("message") if isinstance(envelope, dict) else None,
        )


def unwrap(envelope: Any) -> Any:
    """Renvoie ``data`` d'une enveloppe d'entité (ou la valeur brute)."""
    if isinstance(envelope, dict) and "data" in envelope:
        return envelope["data"]
    return envelope
