"""Guest layouts of engine objects: shader passes, parameters and the video card."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from .xbox_types import GuestStruct, _array, _scalar


@dataclass
class BaseObject(GuestStruct):
    vt: int = _scalar("I")
    ref_count: int = _scalar("i")


@dataclass
class GraphicsDataItem(GuestStruct):
    vt: int = _scalar("I")
    unk: int = _scalar("I")


@dataclass
class ShaderParameter(GuestStruct):
    is_vertex: int = _scalar("I")
    register_index: int = _scalar("I")
    value: tuple = _array("f", 4)


@dataclass
class ShaderParametersDataItem(GraphicsDataItem):
    parameter_count: int = _scalar("I")
    parameters: int = _scalar("I")


@dataclass
class ShaderPassDescriptor(BaseObject):
    texture_map_count: int = _scalar("B")
    texture_map_string_table_indices: tuple = _array("H", 16)
    shader_parameter_count: int = _scalar("I")
    animation_data: int = _scalar("I")
    animation_data_list: int = _scalar("I")
    is_2d: int = _scalar("I")
    dependent_material_string_table_indices: tuple = _array("I", 2)
    material_pass_start: float = _scalar("f", 0.0)
    material_pass_end: float = _scalar("f", 0.0)
    force_unique: int = _scalar("I")
    texture_coordinate_indices: tuple = _array("b", 16)


@dataclass
class ShaderPassSamplerEntry(GuestStruct):
    sampler: int = _scalar("I")
    type: int = _scalar("I")
    value: int = _scalar("I")


@dataclass
class ShaderPassRenderStateEntry(GuestStruct):
    type: int = _scalar("I")
    value: int = _scalar("I")


@dataclass
class X360ShaderPassDescriptor(ShaderPassDescriptor):
    flags: int = _scalar("B")
    vertex_shader_index: int = _scalar("h")
    pixel_shader_index: int = _scalar("h")
    sampler_parameter_count: int = _scalar("I")
    render_state_parameter_count: int = _scalar("I")
    unused0: int = _scalar("I")
    unused1: int = _scalar("I")
    camera_string_table_index: int = _scalar("i")
    material_index: int = _scalar("i")
    gloss_power: float = _scalar("f", 0.0)
    sampler_state_descriptor: int = _scalar("I")
    render_state_descriptor: int = _scalar("I")
    shader_parameters_data_item: int = _scalar("I")


@dataclass
class X360VideoCard(GuestStruct):
    _ORDER: ClassVar[str] = ">"

    vt: int = _scalar("I")
    initialized: int = _scalar("i")
    unused: int = _scalar("i")
    should_inc_frame_count: int = _scalar("i")
    unk_refresh_rate_param: int = _scalar("i")
    unk_refresh_rate_param_2: int = _scalar("i")
    unused2: int = _scalar("i")
    unused3: int = _scalar("i")
    unused4: int = _scalar("I")
    # The remaining fields are host-side and stored in host byte order.
    current_frame: int = _scalar("<i")
    flags: int = _scalar("<B")
    enable_fullscreen_effects: bool = _scalar("<?", False)