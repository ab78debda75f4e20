"""Tests for the Entity base class and its generalization tree."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from entity_core import Entity, RegistrationError


class Animal(Entity):
    name: str | None = None


class Dog(Animal):
    breed: str = "mixed"


class Puppy(Dog):
    __data_name__ = "Puppies"


class Cat(Animal):
    __entity_name__ = "Feline"


class Shape(Entity):
    __entity_abstract__ = True


class Circle(Shape):
    radius: float = 1.0


class Tag(Entity):
    label: str = ""


# ── Identity ────────────────────────────────────────────────────────


class TestIdentity:
    def test_id_is_assigned_at_construction(self) -> None:
        dog = Dog(name="Rex")
        assert isinstance(dog.id, str)
        assert dog.id

    def test_ids_are_unique(self) -> None:
        assert len({Dog().id for _ in range(50)}) == 50

    def test_id_is_immutable(self) -> None:
        dog = Dog()
        with pytest.raises(ValidationError):
            dog.id = "other"

    def test_explicit_id_is_kept(self) -> None:
        assert Dog(id="d-1").id == "d-1"

    def test_attributes_are_inherited(self) -> None:
        puppy = Puppy(name="Bit", breed="beagle")
        assert puppy.name == "Bit"
        assert puppy.breed == "beagle"


# ── Names ───────────────────────────────────────────────────────────


class TestNames:
    def test_entity_name_defaults_to_class_name(self) -> None:
        assert Dog.entity_name() == "Dog"

    def test_entity_name_override(self) -> None:
        assert Cat.entity_name() == "Feline"
        assert Cat.storage_name() == "Feline"

    def test_storage_name_override(self) -> None:
        assert Puppy.entity_name() == "Puppy"
        assert Puppy.storage_name() == "Puppies"

    def test_markers_are_not_inherited(self) -> None:
        class Runt(Puppy):
            pass

        assert Runt.storage_name() == "Runt"
        assert not Runt.is_abstract()


# ── Tree ────────────────────────────────────────────────────────────


class TestTree:
    def test_root_is_abstract(self) -> None:
        assert Entity.is_abstract()
        assert Entity.general_class() is None

    def test_abstract_marker(self) -> None:
        assert Shape.is_abstract()
        assert not Circle.is_abstract()

    def test_general_class(self) -> None:
        assert Puppy.general_class() is Dog
        assert Animal.general_class() is Entity

    def test_ancestors_run_up_to_the_root(self) -> None:
        assert Puppy.ancestor_classes() == [Dog, Animal, Entity]

    def test_descendants_depth_first(self) -> None:
        descendants = Animal.descendant_classes()
        assert descendants[:2] == [Dog, Puppy]
        assert Cat in descendants

    def test_specializations_are_direct_only(self) -> None:
        assert Dog in Animal.specialization_classes()
        assert Puppy not in Animal.specialization_classes()

    def test_two_entity_bases_are_rejected(self) -> None:
        class Hybrid(Circle, Tag):
            pass

        with pytest.raises(RegistrationError, match="exactly one"):
            Hybrid.general_class()


# ── References ──────────────────────────────────────────────────────


def test_reference_carries_only_the_id() -> None:
    ref = Dog.reference("d-9")
    assert isinstance(ref, Dog)
    assert ref.id == "d-9"
    assert ref.model_fields_set == {"id"}
    assert "breed" not in ref.__dict__
