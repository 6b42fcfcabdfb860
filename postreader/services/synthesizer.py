"""
Text-to-audio synthesizers.

The worker depends only on the Synthesizer interface; ChatterboxSynthesizer
is the production implementation backed by Chatterbox TurboTTS.
"""
import asyncio
import functools
import io
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from postreader.config import DEFAULT_VOICE, MODEL_AGGRESSIVE_MEMORY, MODEL_DEVICE, VOICES_DIR

logger = logging.getLogger(__name__)


class Voice:
    """Represents an available voice for TTS."""
    def __init__(self, id: str, display_name: str, file_path: Optional[str] = None):
        self.id = id
        self.display_name = display_name
        self.file_path = file_path


class Synthesizer(ABC):
    """Capability boundary for the external text-to-audio conversion."""

    @property
    def is_ready(self) -> bool:
        return True

    def load_model(self):
        """Prepare the underlying engine. Called once at startup."""

    def scan_voices(self) -> Dict[str, Voice]:
        """Refresh the voice library."""
        return {voice.id: voice for voice in self.get_voices()}

    @abstractmethod
    def get_voices(self) -> List[Voice]:
        """Return every voice the synthesizer accepts."""

    def get_voice_ids(self) -> List[str]:
        return [voice.id for voice in self.get_voices()]

    def has_voice(self, voice_id: str) -> bool:
        return voice_id in self.get_voice_ids()

    @abstractmethod
    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Convert text to audio bytes (WAV)."""

    def cleanup(self):
        """Release any held resources."""


class ChatterboxSynthesizer(Synthesizer):
    """
    Chatterbox TurboTTS synthesizer.

    Voices are reference prompts in the voices directory (filename stem is
    the voice id) plus the model's built-in default voice. Model access is
    serialized with an asyncio.Lock and a single-thread executor because
    the model is not thread-safe.
    """

    def __init__(self, voices_dir: Path = VOICES_DIR, device: str = MODEL_DEVICE):
        self.voices_dir = voices_dir
        self.device = device
        self.model = None
        self.default_conds = None
        self._voices: Dict[str, Voice] = {}
        self._lock = asyncio.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._loaded = False
        self.scan_voices()

    @property
    def is_loaded(self) -> bool:
        """Check if the model is loaded."""
        return self._loaded and self.model is not None

    @property
    def is_ready(self) -> bool:
        return self.is_loaded

    def load_model(self):
        """
        Load the Chatterbox TurboTTS model.

        The Perth watermarker patch must be applied before importing chatterbox.
        """
        import perth
        perth.PerthImplicitWatermarker = perth.DummyWatermarker

        from chatterbox.tts_turbo import ChatterboxTurboTTS

        self.model = ChatterboxTurboTTS.from_pretrained(device=self.device)
        self.default_conds = self.model.conds
        self._loaded = True
        logger.info('Chatterbox model loaded on %s', self.device)

    def scan_voices(self) -> Dict[str, Voice]:
        """
        Scan voices directory for available voice prompts.

        Uses exact filename stem as both id and display_name:
            C3-PO.wav -> id=C3-PO, display_name=C3-PO
        """
        self._voices = {DEFAULT_VOICE: Voice(id=DEFAULT_VOICE, display_name='Default')}

        if self.voices_dir.exists():
            for f in sorted(self.voices_dir.glob('*.wav')):
                self._voices[f.stem] = Voice(
                    id=f.stem,
                    display_name=f.stem,
                    file_path=str(f),
                )

        return self._voices

    def get_voices(self) -> List[Voice]:
        return list(self._voices.values())

    def get_voice(self, voice_id: str) -> Optional[Voice]:
        """Look up a voice, rescanning the library if it is not known yet."""
        if voice_id not in self._voices:
            self.scan_voices()
        return self._voices.get(voice_id)

    def has_voice(self, voice_id: str) -> bool:
        return self.get_voice(voice_id) is not None

    def _generate_sync(self, text: str, voice_path: Optional[str] = None) -> bytes:
        """Synchronous generation method to run in executor."""
        import torch
        import torchaudio as ta

        with torch.inference_mode():
            if voice_path:
                wav = self.model.generate(text, audio_prompt_path=voice_path)
            else:
                # Restore default voice conditionals
                self.model.conds = self.default_conds
                wav = self.model.generate(text)

            # Synchronize MPS so GPU work finishes before tensors are freed
            if torch.backends.mps.is_available():
                torch.mps.synchronize()

        wav_cpu = wav.cpu()
        del wav

        if MODEL_AGGRESSIVE_MEMORY and torch.backends.mps.is_available():
            torch.mps.empty_cache()

        buffer = io.BytesIO()
        ta.save(buffer, wav_cpu, self.model.sr, format='wav')
        return buffer.getvalue()

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        if not self.is_loaded:
            raise RuntimeError('TTS model is not loaded')

        voice = self.get_voice(voice_id)
        if voice is None:
            raise ValueError(f'Unknown voice: {voice_id}')

        async with self._lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                self._executor,
                functools.partial(self._generate_sync, text, voice.file_path),
            )

    def cleanup(self):
        """Clean up resources."""
        self._executor.shutdown(wait=False)
        self.model = None
        self.default_conds = None
        self._loaded = False


# Singleton instance
_synthesizer: Optional[Synthesizer] = None


def get_synthesizer() -> Synthesizer:
    """
    Get the synthesizer singleton instance.

    Usage with FastAPI dependency injection:
        @app.get('/voices')
        async def get_voices(synth: Synthesizer = Depends(get_synthesizer)):
            return synth.get_voices()
    """
    global _synthesizer
    if _synthesizer is None:
        _synthesizer = ChatterboxSynthesizer()
    return _synthesizer


def reset_synthesizer():
    """Reset the synthesizer singleton (for testing)."""
    global _synthesizer
    if _synthesizer is not None:
        _synthesizer.cleanup()
    _synthesizer = None
