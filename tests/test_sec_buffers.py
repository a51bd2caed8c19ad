import pytest

from tlsstream.sec_buffers import BufferType, SecBuffer, SecBufferDescriptor


def test_buffer_types_match_their_numeric_values():
    desc = SecBufferDescriptor(4)
    desc.set_buffer(0, BufferType.EMPTY, None)
    desc.set_buffer(1, BufferType.DATA, b"d")
    desc.set_buffer(2, BufferType.TOKEN, b"t")
    desc.set_buffer(3, BufferType.EXTRA, b"e")
    assert desc.buffer_by_type(0) is desc.buffer(0)
    assert desc.buffer_by_type(1) is desc.buffer(1)
    assert desc.buffer_by_type(2) is desc.buffer(2)
    assert desc.buffer_by_type(5) is desc.buffer(3)


def test_new_descriptor_is_empty():
    desc = SecBufferDescriptor(3)
    assert len(desc) == 3
    assert desc.is_empty()
    assert all(b == SecBuffer() for b in desc)


def test_default_count_is_one():
    assert len(SecBufferDescriptor()) == 1


def test_negative_count_rejected():
    with pytest.raises(ValueError):
        SecBufferDescriptor(-1)


def test_set_and_get_buffer():
    desc = SecBufferDescriptor(2)
    payload = bytearray(b"hello world")
    desc.set_buffer(1, BufferType.TOKEN, payload)
    buf = desc.buffer(1)
    assert buf.buffer_type == BufferType.TOKEN
    assert buf.data is payload
    assert buf.size == len(payload)
    assert not desc.is_empty()
    assert desc[0].buffer_type == BufferType.EMPTY


def test_set_buffer_without_data():
    desc = SecBufferDescriptor(1)
    desc.set_buffer(0, BufferType.MISSING, None)
    assert desc.buffer(0).size == 0
    assert desc.buffer(0).buffer_type == BufferType.MISSING


def test_index_out_of_range():
    desc = SecBufferDescriptor(2)
    with pytest.raises(IndexError):
        desc.set_buffer(2, BufferType.DATA, b"x")
    with pytest.raises(IndexError):
        desc.buffer(5)
    with pytest.raises(IndexError):
        desc.buffer(-1)


def test_buffer_by_type_finds_first():
    desc = SecBufferDescriptor(4)
    desc.set_buffer(1, BufferType.DATA, b"a")
    desc.set_buffer(3, BufferType.DATA, b"bb")
    found = desc.buffer_by_type(BufferType.DATA)
    assert found is desc.buffer(1)
    assert desc.buffer_by_type(BufferType.EXTRA) is None


def test_clear_resets_in_place():
    desc = SecBufferDescriptor(2)
    desc.set_buffer(0, BufferType.DATA, b"abc")
    held = desc.buffer(0)
    desc.clear()
    assert desc.is_empty()
    assert held.data is None
    assert held.size == 0
    assert held is desc.buffer(0)


def test_returned_buffer_is_live():
    desc = SecBufferDescriptor(1)
    desc.buffer(0).buffer_type = BufferType.EXTRA
    desc.buffer(0).size = 7
    assert desc.buffer_by_type(BufferType.EXTRA).size == 7