"""Persistence collaborator for generations, brands and concepts.

Only an in-memory implementation ships; a database-backed one needs to honour
the same protocol. Records are stored as deep copies so callers never mutate
stored state by accident.
"""
from __future__ import annotations

from typing import Optional, Protocol

from app.schemas import BrandContext, ConceptContext, GenerationRecord, GenerationStatus


class GenerationRepository(Protocol):
    async def save_brand(self, brand: BrandContext) -> BrandContext:
        ...

    async def save_concept(self, concept: ConceptContext) -> ConceptContext:
        ...

    async def get_brand(self, brand_id: str) -> Optional[BrandContext]:
        ...

    async def get_concept(self, concept_id: str) -> Optional[ConceptContext]:
        ...

    async def create(self, record: GenerationRecord) -> GenerationRecord:
        ...

    async def save(self, record: GenerationRecord) -> GenerationRecord:
        ...

    async def get(self, generation_id: str) -> Optional[GenerationRecord]:
        ...

    async def list_for_user(self, user_id: str) -> list[GenerationRecord]:
        ...

    async def find_latest_processing(self, user_id: str) -> Optional[GenerationRecord]:
        ...


class InMemoryRepository:
    def __init__(self) -> None:
        self.brands: dict[str, BrandContext] = {}
        self.concepts: dict[str, ConceptContext] = {}
        self.records: dict[str, GenerationRecord] = {}

    async def save_brand(self, brand: BrandContext) -> BrandContext:
        self.brands[brand.id] = brand
        return brand

    async def save_concept(self, concept: ConceptContext) -> ConceptContext:
        self.concepts[concept.id] = concept
        return concept

    async def get_brand(self, brand_id: str) -> Optional[BrandContext]:
        return self.brands.get(brand_id)

    async def get_concept(self, concept_id: str) -> Optional[ConceptContext]:
        return self.concepts.get(concept_id)

    async def create(self, record: GenerationRecord) -> GenerationRecord:
        if record.id in self.records:
            raise KeyError(f"Generation {record.id} already exists")
        self.records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def save(self, record: GenerationRecord) -> GenerationRecord:
        if record.id not in self.records:
            raise KeyError(f"Generation {record.id} does not exist")
        self.records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def get(self, generation_id: str) -> Optional[GenerationRecord]:
        record = self.records.get(generation_id)
        return record.model_copy(deep=True) if record else None

    async def list_for_user(self, user_id: str) -> list[GenerationRecord]:
        owned = [r for r in self.records.values() if r.user_id == user_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in owned]

    async def find_latest_processing(self, user_id: str) -> Optional[GenerationRecord]:
        for record in await self.list_for_user(user_id):
            if record.status == GenerationStatus.PROCESSING:
                return record
        return None


__all__ = ["GenerationRepository", "InMemoryRepository"]
