import struct

import pytest

from xexkit.melody import (
    BaseObject,
    GraphicsDataItem,
    ShaderParameter,
    ShaderParametersDataItem,
    ShaderPassDescriptor,
    ShaderPassRenderStateEntry,
    ShaderPassSamplerEntry,
    X360ShaderPassDescriptor,
    X360VideoCard,
)


def test_base_object_wire_bytes():
    obj = BaseObject(vt=0x82000010, ref_count=1)
    assert obj.to_bytes() == bytes.fromhex("8200001000000001")


def test_base_object_negative_ref_count_round_trip():
    obj = BaseObject(vt=0x82001234, ref_count=-3)
    assert BaseObject.from_bytes(obj.to_bytes()) == obj


def test_shader_parameter_round_trip():
    param = ShaderParameter(is_vertex=1, register_index=7, value=(1.5, -2.0, 0.25, 8.0))
    decoded = ShaderParameter.from_bytes(param.to_bytes())
    assert decoded == param
    assert param.to_bytes()[8:12] == struct.pack(">f", 1.5)


def test_parameters_data_item_extends_graphics_item():
    item = ShaderParametersDataItem(vt=0x82100000, unk=5, parameter_count=2, parameters=0x40001000)
    base = GraphicsDataItem(vt=0x82100000, unk=5).to_bytes()
    encoded = item.to_bytes()
    assert encoded[:len(base)] == base
    assert encoded[len(base):] == struct.pack(">II", 2, 0x40001000)
    assert ShaderParametersDataItem.from_bytes(encoded) == item


def test_shader_pass_descriptor_size():
    assert ShaderPassDescriptor.byte_size() == 96


def test_x360_shader_pass_descriptor_size():
    assert X360ShaderPassDescriptor.byte_size() == 144


def test_shader_pass_descriptor_round_trip():
    desc = ShaderPassDescriptor(
        vt=0x82000000, ref_count=2, texture_map_count=3,
        texture_map_string_table_indices=tuple(range(16)),
        shader_parameter_count=4, is_2d=1,
        dependent_material_string_table_indices=(9, 10),
        material_pass_start=0.5, material_pass_end=1.0,
        texture_coordinate_indices=(-1,) * 8 + (0, 1, 2, 3, 4, 5, 6, 7),
    )
    assert ShaderPassDescriptor.from_bytes(desc.to_bytes()) == desc


def test_x360_descriptor_starts_with_base_layout():
    common = dict(vt=0x82000040, ref_count=1, texture_map_count=2, shader_parameter_count=6,
                  material_pass_start=0.25, force_unique=1)
    derived = X360ShaderPassDescriptor(**common, flags=1, vertex_shader_index=-1,
                                       pixel_shader_index=12, gloss_power=32.0,
                                       shader_parameters_data_item=0x40002000)
    base = ShaderPassDescriptor(**common).to_bytes()
    encoded = derived.to_bytes()
    assert encoded[:len(base)] == base
    assert encoded[-4:] == struct.pack(">I", 0x40002000)
    assert X360ShaderPassDescriptor.from_bytes(encoded) == derived


def test_sampler_and_render_state_entries():
    assert ShaderPassSamplerEntry(sampler=1, type=2, value=3).to_bytes() == struct.pack(">III", 1, 2, 3)
    assert ShaderPassRenderStateEntry(type=7, value=8).to_bytes() == struct.pack(">II", 7, 8)


def test_video_card_size():
    assert X360VideoCard.byte_size() == 44


def test_video_card_host_fields_little_endian():
    card = X360VideoCard(vt=0x82000100, initialized=1, current_frame=0x01020304,
                         flags=5, enable_fullscreen_effects=True)
    encoded = card.to_bytes()
    assert encoded[:4] == bytes.fromhex("82000100")
    assert bytes.fromhex("04030201") in encoded
    assert X360VideoCard.from_bytes(encoded) == card


def test_truncated_data_is_rejected():
    with pytest.raises(ValueError):
        X360ShaderPassDescriptor.from_bytes(bytes(20))