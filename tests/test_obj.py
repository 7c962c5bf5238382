import copy

from dicekv.obj import Obj, ObjEncoding, ObjType


def test_default_object_is_plain_string():
    obj = Obj(value="v1")
    assert obj.obj_type is ObjType.STRING
    assert obj.encoding is ObjEncoding.RAW
    assert obj.is_json() is False


def test_json_object_needs_type_and_encoding():
    assert Obj(value={}, obj_type=ObjType.JSON, encoding=ObjEncoding.JSON).is_json() is True
    assert Obj(value={}, obj_type=ObjType.JSON, encoding=ObjEncoding.RAW).is_json() is False
    assert Obj(value={}, obj_type=ObjType.STRING, encoding=ObjEncoding.JSON).is_json() is False


def test_objects_are_keyed_by_identity():
    first = Obj(value="same")
    second = Obj(value="same")
    expiries = {first: 1, second: 2}
    assert len(expiries) == 2
    assert expiries[first] == 1
    assert first != second
    assert first == first


def test_copy_is_independent_of_original():
    original = Obj(value={"name": "Tom"}, obj_type=ObjType.JSON, encoding=ObjEncoding.JSON)
    duplicate = copy.copy(original)
    duplicate.value = "replaced"
    assert original.value == {"name": "Tom"}
    assert duplicate.is_json() is True