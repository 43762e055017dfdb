"""Shared fixtures.

``backend`` is a real GPUBackend on the first available adapter (tests
using it are skipped without one). ``fake_backend`` wraps an in-memory
stand-in for the wgpu device that records what the engine submits, so the
bookkeeping (dirty flags, bindings, caches, release) can be checked
anywhere.
"""

import pytest

from wgpu_array import BackendOptions, GPUBackend, request_backend


# ============================================================================
# Real Device
# ============================================================================

@pytest.fixture(scope="session")
def backend():
    try:
        gpu = request_backend(BackendOptions.from_env())
    except Exception as e:
        pytest.skip(f"No GPU adapter available: {e}")
    yield gpu
    gpu.destroy()


# ============================================================================
# Recording Device
# ============================================================================

class FakeBuffer:
    def __init__(self, size, usage, data=None):
        self.size = size
        self.usage = usage
        self.data = bytearray(size)
        if data is not None:
            raw = memoryview(data).tobytes()
            self.data[:len(raw)] = raw
        self.destroyed = False
        self.mapped = False

    def map_sync(self, mode, offset=0, size=None):
        self.mapped = True

    async def map_async(self, mode, offset=0, size=None):
        self.mapped = True

    def read_mapped(self, buffer_offset=None, size=None, copy=True):
        assert self.mapped
        return memoryview(bytes(self.data))

    def unmap(self):
        self.mapped = False

    def destroy(self):
        self.destroyed = True


class FakePass:
    def __init__(self, commands):
        self.commands = commands
        self.record = {}

    def set_pipeline(self, pipeline):
        self.record["pipeline"] = pipeline

    def set_bind_group(self, index, bind_group):
        self.record["bind_group"] = bind_group

    def dispatch_workgroups(self, x, y=1, z=1):
        self.record["workgroups"] = (x, y, z)

    def end(self):
        self.commands.append(("dispatch", self.record))


class FakeEncoder:
    def __init__(self):
        self.commands = []

    def begin_compute_pass(self):
        return FakePass(self.commands)

    def copy_buffer_to_buffer(self, src, src_offset, dst, dst_offset, size):
        self.commands.append(("copy", (src, src_offset, dst, dst_offset, size)))

    def finish(self):
        return list(self.commands)


class FakeQueue:
    def __init__(self, device):
        self.device = device
        self.writes = []
        self.submissions = []

    def write_buffer(self, buffer, offset, data):
        raw = memoryview(data).tobytes()
        buffer.data[offset:offset + len(raw)] = raw
        self.writes.append(buffer)

    def submit(self, command_buffers):
        for commands in command_buffers:
            for kind, args in commands:
                if kind == "copy":
                    src, so, dst, do, size = args
                    dst.data[do:do + size] = src.data[so:so + size]
                else:
                    self.device.dispatches.append(args)
        self.submissions.append(command_buffers)

    def on_submitted_work_done_sync(self):
        pass

    async def on_submitted_work_done_async(self):
        pass


class FakeShaderModule:
    def __init__(self, code):
        self.code = code

    def get_compilation_info_sync(self):
        return []


class FakeDevice:
    def __init__(self, features=("shader-f16",), max_workgroups=65535):
        self.features = set(features)
        self.limits = {
            "max-compute-workgroup-size-x": 256,
            "max-compute-invocations-per-workgroup": 256,
            "max-compute-workgroups-per-dimension": max_workgroups,
        }
        self.queue = FakeQueue(self)
        self.buffers = []
        self.shader_modules = []
        self.pipelines = []
        self.dispatches = []
        self.destroyed = False

    def create_buffer(self, size, usage):
        buffer = FakeBuffer(size, usage)
        self.buffers.append(buffer)
        return buffer

    def create_buffer_with_data(self, data, usage):
        raw = memoryview(data).tobytes()
        buffer = FakeBuffer(len(raw), usage, raw)
        self.buffers.append(buffer)
        return buffer

    def create_shader_module(self, code):
        module = FakeShaderModule(code)
        self.shader_modules.append(module)
        return module

    def create_bind_group_layout(self, entries, label=""):
        return {"entries": entries, "label": label}

    def create_pipeline_layout(self, bind_group_layouts):
        return {"bind_group_layouts": bind_group_layouts}

    def create_compute_pipeline(self, layout, compute):
        pipeline = {"layout": layout, "compute": compute}
        self.pipelines.append(pipeline)
        return pipeline

    def create_bind_group(self, layout, entries):
        return {"layout": layout, "entries": entries}

    def create_command_encoder(self):
        return FakeEncoder()

    def destroy(self):
        self.destroyed = True


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def fake_backend(fake_device):
    return GPUBackend(fake_device)


def bound_buffers(dispatch):
    """Buffers of a recorded dispatch, in binding order."""
    return [e["resource"]["buffer"] for e in dispatch["bind_group"]["entries"]]
