"""
Tests for the bet account decoder.
Covers layout offsets, the Option<u8> branch, and every rejection path.
"""

import logging
import struct

import pytest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from block_battle.decoder import (
    BET_ACCOUNT_DISCRIMINATOR,
    MIN_RECORD_SIZE,
    OPEN_STAGE_OFFSET,
    WINNER_TAG_OFFSET,
    ByteCursor,
    DecodeError,
    decode_batch,
    decode_pool_record,
    encode_pool_record,
)
from block_battle.models import Identity, PoolRecord, Stage


CREATOR = Identity(bytes([1]) * 32)
ARBITER = Identity(bytes([2]) * 32)


def make_record(**overrides) -> PoolRecord:
    fields = dict(
        creator=CREATOR,
        arbiter=ARBITER,
        min_deposit=100_000_000,
        total_pool=300_000_000,
        lock_time=1_700_000_000,
        winner_selection=None,
        stage=Stage.OPEN,
        participant_count=3,
        is_automatic=False,
        bump=254,
    )
    fields.update(overrides)
    return PoolRecord(**fields)


class TestLayoutConstants:
    """The fixed offsets the bulk filter depends on."""

    def test_min_record_size(self):
        assert MIN_RECORD_SIZE == 101

    def test_open_stage_offset_follows_winner_tag(self):
        assert OPEN_STAGE_OFFSET == WINNER_TAG_OFFSET + 1 == 97

    def test_open_record_has_stage_byte_at_filter_offset(self):
        data = encode_pool_record(make_record(stage=Stage.OPEN))
        assert data[OPEN_STAGE_OFFSET] == 0

    def test_discriminator_is_anchor_account_tag(self):
        import hashlib
        assert BET_ACCOUNT_DISCRIMINATOR == hashlib.sha256(b"account:BetAccount").digest()[:8]


class TestRoundTrip:
    """decode(encode(record)) == record."""

    @pytest.mark.parametrize("record", [
        make_record(),
        make_record(is_automatic=True, lock_time=-5),
        make_record(stage=Stage.REVEALED, winner_selection=7),
        make_record(stage=Stage.CANCELLED, participant_count=0, total_pool=0),
        make_record(min_deposit=2**64 - 1, total_pool=2**64 - 1, participant_count=255),
    ])
    def test_round_trip(self, record):
        decoded = decode_pool_record(encode_pool_record(record))
        assert decoded == record
        assert decoded.bump == record.bump

    def test_field_values(self):
        decoded = decode_pool_record(encode_pool_record(make_record()))
        assert decoded.creator == CREATOR
        assert decoded.arbiter == ARBITER
        assert decoded.min_deposit == 100_000_000
        assert decoded.total_pool == 300_000_000
        assert decoded.lock_time == 1_700_000_000
        assert decoded.winner_selection is None
        assert decoded.stage is Stage.OPEN
        assert decoded.participant_count == 3
        assert decoded.is_automatic is False


class TestPresenceTagBranching:
    """Everything after winner_block shifts by one byte when a winner is present."""

    def test_present_winner_shifts_tail_by_one(self):
        absent = encode_pool_record(make_record(stage=Stage.REVEALED, winner_selection=None))
        present = encode_pool_record(make_record(stage=Stage.REVEALED, winner_selection=9))

        assert len(present) == len(absent) + 1
        # tail bytes identical, one byte later
        assert present[WINNER_TAG_OFFSET + 2:] == absent[WINNER_TAG_OFFSET + 1:]

        rec_absent = decode_pool_record(absent)
        rec_present = decode_pool_record(present)
        assert rec_absent.stage == rec_present.stage == Stage.REVEALED
        assert rec_absent.participant_count == rec_present.participant_count
        assert rec_absent.is_automatic == rec_present.is_automatic
        assert rec_present.winner_selection == 9

    def test_winner_value_not_read_as_stage(self):
        # winner value 2 would be "Cancelled" if the tag were ignored
        data = encode_pool_record(make_record(stage=Stage.REVEALED, winner_selection=2))
        assert decode_pool_record(data).stage is Stage.REVEALED

    def test_revealed_without_winner_decodes_structurally(self):
        """Tag 0 with stage 1 is not cross-validated by the decoder."""
        data = bytearray(encode_pool_record(make_record()))
        data[OPEN_STAGE_OFFSET] = 1
        record = decode_pool_record(bytes(data))
        assert record.stage is Stage.REVEALED
        assert record.winner_selection is None


class TestRejections:
    """Malformed buffers raise DecodeError."""

    def test_short_buffer(self):
        data = encode_pool_record(make_record())
        with pytest.raises(DecodeError, match="too short"):
            decode_pool_record(data[:MIN_RECORD_SIZE - 1])

    def test_empty_buffer(self):
        with pytest.raises(DecodeError):
            decode_pool_record(b"")

    def test_discriminator_mismatch(self):
        data = bytearray(encode_pool_record(make_record()))
        data[0] ^= 0xFF
        with pytest.raises(DecodeError, match="discriminator"):
            decode_pool_record(bytes(data))

    def test_custom_discriminator(self):
        tag = b"\x00" * 8
        data = encode_pool_record(make_record(), discriminator=tag)
        assert decode_pool_record(data, discriminator=tag) == make_record()
        with pytest.raises(DecodeError):
            decode_pool_record(data)

    @pytest.mark.parametrize("stage_byte", [3, 4, 255])
    def test_invalid_stage(self, stage_byte):
        data = bytearray(encode_pool_record(make_record()))
        data[OPEN_STAGE_OFFSET] = stage_byte
        with pytest.raises(DecodeError, match="stage") as exc:
            decode_pool_record(bytes(data))
        assert exc.value.offset == OPEN_STAGE_OFFSET

    @pytest.mark.parametrize("tag", [2, 0xFF])
    def test_invalid_presence_tag(self, tag):
        data = bytearray(encode_pool_record(make_record()))
        data[WINNER_TAG_OFFSET] = tag
        with pytest.raises(DecodeError, match="presence tag"):
            decode_pool_record(bytes(data))

    @pytest.mark.parametrize("flag", [2, 0x80])
    def test_invalid_is_automatic(self, flag):
        data = bytearray(encode_pool_record(make_record()))
        data[-1] = flag
        with pytest.raises(DecodeError, match="bool"):
            decode_pool_record(bytes(data))

    def test_truncated_after_present_winner(self):
        """Tag 1 needs one more byte than the minimum size."""
        data = encode_pool_record(make_record(stage=Stage.REVEALED, winner_selection=4))
        with pytest.raises(DecodeError, match="truncated"):
            decode_pool_record(data[:-1])

    def test_trailing_bytes_tolerated(self):
        record = make_record(stage=Stage.REVEALED, winner_selection=3)
        data = encode_pool_record(record) + b"\x07" * 64
        assert decode_pool_record(data) == record


class TestByteCursor:
    """Low-level cursor reads."""

    def test_little_endian_ints(self):
        cursor = ByteCursor(struct.pack("<Qq", 258, -2))
        assert cursor.read_u64() == 258
        assert cursor.read_i64() == -2
        assert cursor.remaining == 0

    def test_read_past_end(self):
        cursor = ByteCursor(b"\x01")
        cursor.read_u8()
        with pytest.raises(DecodeError):
            cursor.read_u8()

    def test_option(self):
        assert ByteCursor(b"\x00").read_option_u8() is None
        assert ByteCursor(b"\x01\x05").read_option_u8() == 5


class TestDecodeBatch:
    """Partial failures are collected, not raised."""

    def test_counts_failures(self):
        good = encode_pool_record(make_record())
        accounts = [
            ("A", good),
            ("B", b"\x00" * 10),
            ("C", good),
            ("D", b"\xff" * 120),
        ]
        batch = decode_batch(accounts)
        assert [e.address for e in batch.entries] == ["A", "C"]
        assert batch.failure_count == 2
        assert {f.address for f in batch.failures} == {"B", "D"}

    def test_skipped_accounts_are_logged(self, caplog):
        accounts = [("Good", encode_pool_record(make_record())), ("Short", b"\x00" * 10)]
        with caplog.at_level(logging.WARNING, logger="block_battle.decoder"):
            decode_batch(accounts)

        messages = [r.getMessage() for r in caplog.records]
        assert any("Short" in m and "too short" in m for m in messages)
        assert not any("Good" in m for m in messages)

    def test_empty_batch(self):
        batch = decode_batch([])
        assert batch.entries == []
        assert batch.failure_count == 0
