"""
Submodel Test Suite: polymorphic families sharing one collection.

Run: python -m pytest docmesh/tests/test_submodel.py -v
"""

from __future__ import annotations

import pytest

from docmesh.core.errors import (
    MissingSubmodel,
    SubmodelError,
    UnknownSubmodel,
    WrongModelType,
    WrongSubmodel,
)
from docmesh.core.types import DocumentId
from docmesh.models import ShardedSubmodel, StorableModel, StorableSubmodel, resolver
from docmesh.schema import NumberField, StringField, schema_of


class Shape(StorableSubmodel):
    color = StringField()


class Circle(Shape):
    __submodel__ = "circle"

    radius = NumberField()


class Square(Shape):
    __submodel__ = "square"

    side = NumberField()


class Ellipse(Circle):
    __submodel__ = "ellipse"


class Plain(StorableModel):
    name = StringField()


Shape.register_submodel("circle", Circle)
Shape.register_submodel("square", Square)


class Vehicle(ShardedSubmodel):
    wheels = NumberField()


class Car(Vehicle):
    __submodel__ = "car"


Vehicle.register_submodel("car", Car)


class Figure(StorableSubmodel):
    label = StringField()


class Polygon(Figure):
    corners = NumberField()


class Triangle(Polygon):
    __submodel__ = "triangle"


class Rect(Polygon):
    __submodel__ = "rect"


class Dot(Figure):
    __submodel__ = "dot"


Figure.register_submodel("triangle", Triangle)
Figure.register_submodel("dot", Dot)
Figure.register_submodel("rect", Rect)


# =============================================================================
# TEST: FAMILY DECLARATION
# =============================================================================
def test_family_shares_collection():
    assert Shape.__collection__ == "shape"
    assert Circle.__collection__ == "shape"
    assert Ellipse.__collection__ == "shape"


def test_schema_discriminator():
    assert schema_of(Shape).is_abstract
    assert schema_of(Circle).submodel == "circle"
    assert schema_of(Circle).discriminator == "submodel"
    assert schema_of(Circle).field_names == ["_id", "submodel", "color", "radius"]


def test_make_sets_discriminator():
    circle = Circle.make({"radius": 2})
    assert circle.submodel == "circle"
    assert circle.is_valid()


def test_make_abstract_raises():
    with pytest.raises(SubmodelError):
        Shape.make({"color": "red"})


def test_make_with_explicit_submodel_raises():
    with pytest.raises(SubmodelError):
        Circle.make({"submodel": "circle"})


def test_validate_detects_tampered_discriminator():
    circle = Circle.make({"radius": 1})
    circle.submodel = "square"
    with pytest.raises(WrongSubmodel):
        circle.validate()


# =============================================================================
# TEST: REGISTRATION
# =============================================================================
def test_registered_table():
    assert resolver.registered(Shape) == {"circle": Circle, "square": Square}


def test_register_duplicate():
    with pytest.raises(SubmodelError):
        Shape.register_submodel("circle", Circle)


def test_register_name_mismatch():
    with pytest.raises(SubmodelError):
        Shape.register_submodel("oval", Ellipse)


def test_register_on_concrete_class():
    with pytest.raises(SubmodelError):
        Circle.register_submodel("ellipse", Ellipse)


def test_register_foreign_class():
    with pytest.raises(WrongModelType):
        Shape.register_submodel("car", Car)


def test_register_on_plain_model():
    with pytest.raises(WrongModelType):
        Plain.register_submodel("plain", Circle)


# =============================================================================
# TEST: LOADING
# =============================================================================
def test_from_document_dispatches_on_discriminator():
    doc_id = DocumentId.generate()
    shape = Shape.from_document({"_id": doc_id, "submodel": "square", "side": 3})

    assert isinstance(shape, Square)
    assert shape._id == doc_id
    assert shape.side == 3


def test_from_document_missing_discriminator():
    with pytest.raises(MissingSubmodel):
        Shape.from_document({"_id": DocumentId.generate(), "color": "red"})


def test_from_document_unknown_discriminator():
    with pytest.raises(UnknownSubmodel):
        Shape.from_document({"_id": DocumentId.generate(), "submodel": "ellipse"})


def test_concrete_class_rejects_other_members():
    circle_doc = {"_id": DocumentId.generate(), "submodel": "circle", "radius": 1}
    with pytest.raises(WrongSubmodel):
        Square.from_document(circle_doc)


# =============================================================================
# TEST: PERSISTENCE
# =============================================================================
async def test_find_through_base_returns_members(context):
    await Circle.make({"radius": 1, "color": "red"}).save()
    await Square.make({"side": 2, "color": "red"}).save()

    shapes = await Shape.find({"color": "red"}).all()
    assert sorted(type(s).__name__ for s in shapes) == ["Circle", "Square"]


async def test_find_through_member_is_narrowed(context):
    circle = await Circle.make({"radius": 1}).save()
    square = await Square.make({"side": 2}).save()

    assert [c._id for c in await Circle.find().all()] == [circle._id]
    assert isinstance(await Shape.get(square._id), Square)
    assert await Square.get(circle._id) is None


async def test_destroy_all_is_narrowed(context):
    await Circle.make({"radius": 1}).save()
    await Square.make({"side": 2}).save()

    await Square.destroy_all()

    remaining = await Shape.find().all()
    assert [type(s) for s in remaining] == [Circle]


async def test_update_keeps_discriminator(context):
    circle = await Circle.make({"radius": 1}).save()
    await circle.update({"submodel": "square", "radius": 3})

    loaded = await Shape.get(circle._id)
    assert isinstance(loaded, Circle)
    assert loaded.radius == 3


async def test_sharded_family(context):
    car = await Car.make({"shard_id": "s1", "wheels": 4}).save()

    vehicles = await Vehicle.find(shard_id="s1").all()
    assert [type(v) for v in vehicles] == [Car]
    assert vehicles[0].shard_id == "s1"
    assert vehicles[0]._id == car._id
    assert await Vehicle.find(shard_id="s2").count() == 0


# =============================================================================
# TEST: INTERMEDIATE ABSTRACT CLASSES
# =============================================================================
def test_names_under_intermediate_class():
    assert resolver.names_under(Polygon) == ["triangle", "rect"]
    assert resolver.names_under(Figure) == ["triangle", "dot", "rect"]


async def test_find_through_intermediate_class(context):
    await Dot.make({"label": "a"}).save()
    await Triangle.make({"label": "a", "corners": 3}).save()
    await Rect.make({"label": "a", "corners": 4}).save()

    polygons = await Polygon.find().all()
    assert sorted(type(p).__name__ for p in polygons) == ["Rect", "Triangle"]
    assert await Polygon.find({"submodel": "dot"}).count() == 0
    assert await Figure.find({"label": "a"}).count() == 3


async def test_destroy_all_through_intermediate_class(context):
    dot = await Dot.make({}).save()
    await Triangle.make({"corners": 3}).save()

    await Polygon.destroy_all()

    remaining = await Figure.find().all()
    assert [f._id for f in remaining] == [dot._id]
