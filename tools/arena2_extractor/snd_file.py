"""Sound extractor for DAGGER.SND.

DAGGER.SND is a BSA archive of raw 8-bit unsigned mono PCM samples at
11025 Hz. Nothing but the samples is stored; a 44-byte RIFF/WAVE header
is built from the record length when a sound is fetched.

WAV header (44 bytes, little-endian):
    "RIFF", uint32 length + 36, "WAVE",
    "fmt ", uint32 16, uint16 format (1 = PCM), uint16 channels (1),
    uint32 sample rate (11025), uint32 byte rate (11025),
    uint16 block align (1), uint16 bits per sample (8),
    "data", uint32 length

By default only the most recently fetched sound is kept decoded
(auto_discard). Turn it off to keep every fetched sound resident.

Usage:
    python -m arena2_extractor.snd_file <DAGGER.SND> --list
    python -m arena2_extractor.snd_file <DAGGER.SND> --extract 12 -o ./sounds
    python -m arena2_extractor.snd_file <DAGGER.SND> --extract-all -o ./sounds
"""
import argparse
import io
import logging
import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from .bsa_file import BsaFile
from .errors import Arena2Error
from .file_proxy import FileProxy, FileUsage

logger = logging.getLogger(__name__)

SAMPLE_RATE = 11025
WAV_HEADER_SIZE = 44


def create_pcm_header(length: int) -> bytes:
    """Build the WAV header for ``length`` bytes of 8-bit mono PCM."""
    return (
        b"RIFF" + struct.pack("<I", length + 36) + b"WAVE"
        + b"fmt " + struct.pack("<IHHIIHH", 16, 1, 1, SAMPLE_RATE, SAMPLE_RATE, 1, 8)
        + b"data" + struct.pack("<I", length)
    )


@dataclass
class DFSound:
    """Decoded sound. An empty DFSound means the fetch failed."""
    name: str = ""
    wave_header: bytes = b""
    wave_data: bytes = b""

    @property
    def is_empty(self) -> bool:
        return not self.wave_header

    def to_bytes(self) -> bytes:
        return self.wave_header + self.wave_data


@dataclass
class _SoundRecord:
    proxy: Optional[FileProxy] = None
    sound: Optional[DFSound] = None


class SndFile:
    """Reader for DAGGER.SND."""

    def __init__(self, path: Union[str, Path, None] = None,
                 usage: FileUsage = FileUsage.USE_MEMORY, read_only: bool = True):
        """Initialize, optionally loading ``path``.

        Args:
            path: Path to DAGGER.SND
            usage: Keep the file on disk or read it into memory
            read_only: Open without write access
        """
        self.auto_discard = True
        self.last_sound = -1
        self._archive = BsaFile()
        self._records: Dict[int, _SoundRecord] = {}
        if path is not None:
            self.load(path, usage, read_only)

    @classmethod
    def from_archive(cls, archive: BsaFile) -> "SndFile":
        """Wrap an already opened sound archive."""
        snd = cls()
        snd._archive = archive
        return snd

    def load(self, path: Union[str, Path], usage: FileUsage = FileUsage.USE_MEMORY,
             read_only: bool = True):
        """Open the sound archive.

        Raises:
            FileNotFoundError: If the file does not exist
            FormatError: If it is not a BSA archive
        """
        self.discard_all_sounds()
        self._archive.load(path, usage, read_only)

    def close(self):
        self.discard_all_sounds()
        self._archive.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def archive(self) -> BsaFile:
        return self._archive

    @property
    def count(self) -> int:
        return self._archive.count

    def is_loaded(self, index: int) -> bool:
        """Whether sound ``index`` is currently held decoded."""
        record = self._records.get(index)
        return record is not None and record.sound is not None

    def get_sound(self, index: int) -> DFSound:
        """Fetch a decoded sound.

        Returns the held sound if ``index`` is already decoded. Otherwise,
        with auto_discard on, the previous sound is released first.

        Returns:
            DFSound, empty if the record is missing or cannot be decoded
        """
        record = self._records.get(index)
        if record is not None and record.sound is not None:
            self.last_sound = index
            return record.sound

        if self.auto_discard and self.last_sound != -1 and self.last_sound != index:
            self.discard_sound(self.last_sound)

        if not 0 <= index < self._archive.count:
            logger.warning("Sound index %d not in %s (%d records)",
                           index, self._archive.file_path or "archive", self._archive.count)
            return DFSound()

        record = _SoundRecord()
        self._records[index] = record
        try:
            record.proxy = self._archive.get_record_proxy(index)
            data = record.proxy.read_all()
            record.sound = DFSound(
                name=self._archive.get_record_name(index),
                wave_header=create_pcm_header(len(data)),
                wave_data=data,
            )
        except (OSError, struct.error, Arena2Error) as e:
            logger.warning("Failed to decode sound %d: %s", index, e)
            self.discard_sound(index)
            return DFSound()

        self.last_sound = index
        return record.sound

    def get_stream(self, index: int) -> Optional[io.BytesIO]:
        """Get a sound as an in-memory WAV stream, or None if it fails."""
        sound = self.get_sound(index)
        if sound.is_empty:
            return None
        return io.BytesIO(sound.to_bytes())

    def save_wav(self, index: int, output_path: Union[str, Path]) -> bool:
        """Write a sound to a .wav file.

        Returns:
            True if successful
        """
        sound = self.get_sound(index)
        if sound.is_empty:
            return False
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(sound.to_bytes())
        return True

    def discard_sound(self, index: int):
        """Release one decoded sound and its record source."""
        record = self._records.pop(index, None)
        if record is not None and record.proxy is not None:
            record.proxy.close()
        if self.last_sound == index:
            self.last_sound = -1

    def discard_all_sounds(self):
        for index in list(self._records):
            self.discard_sound(index)


def main():
    parser = argparse.ArgumentParser(
        description="Extract sounds from DAGGER.SND as WAV files"
    )
    parser.add_argument("input", help="Path to DAGGER.SND")
    parser.add_argument("--list", "-l", action="store_true",
                        help="List sounds")
    parser.add_argument("--extract", "-e", type=int, metavar="INDEX",
                        help="Extract one sound")
    parser.add_argument("--extract-all", action="store_true",
                        help="Extract all sounds")
    parser.add_argument("--output", "-o", default="./output",
                        help="Output directory (default: ./output)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Verbose output")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        snd = SndFile(args.input)
    except (OSError, struct.error, Arena2Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with snd:
        if args.list:
            print(f"{snd.count} sounds:")
            for index in range(snd.count):
                length = snd.archive.get_record_length(index)
                seconds = length / SAMPLE_RATE
                print(f"  [{index}] {snd.archive.get_record_name(index)} "
                      f"({length:,} bytes, {seconds:.2f}s)")
            return 0

        if args.extract is not None:
            indices = [args.extract]
        elif args.extract_all:
            indices = range(snd.count)
        else:
            parser.print_help()
            return 0

        fail_count = 0
        for index in indices:
            output_file = Path(args.output) / f"{index:03d}.wav"
            if snd.save_wav(index, output_file):
                if args.verbose:
                    print(f"Exported: {index} -> {output_file}")
            else:
                print(f"Failed: sound {index}", file=sys.stderr)
                fail_count += 1

        print(f"\nExtracted {len(indices) - fail_count}/{len(indices)} sounds to {args.output}")
        return 0 if fail_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
