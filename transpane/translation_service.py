import logging
import threading
import time
from typing import List

import torch
from transformers import AutoModelForSeq2SeqLM, AutoTokenizer

from .exceptions import TranslationError, TranslatorUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "Helsinki-NLP/opus-mt-zh-en"

# Fixed pair: Simplified Chinese -> English
NLLB_SOURCE = "zho_Hans"
NLLB_TARGET = "eng_Latn"
M2M_SOURCE = "zh"
M2M_TARGET = "en"


class Translator:
    """Interface of the translation primitive"""

    def prepare(self):
        """Raise TranslatorUnavailableError if the language pair cannot be used"""
        raise NotImplementedError

    def translate_batch(self, texts: List[str]) -> List[str]:
        """Translate all texts at once; same order and length as the input"""
        raise NotImplementedError


class TransformersTranslator(Translator):
    """Local Transformers seq2seq model: Marian (opus-mt), NLLB or M2M100."""

    def __init__(self, model_name: str = DEFAULT_MODEL, device: str = None, max_length: int = 128):
        self.model_name = model_name
        self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self.max_length = max_length
        self.model = None
        self.tokenizer = None
        self._loaded_model_name = None
        self._lock = threading.Lock()
        # Last error detail (for UI)
        self.last_error: str | None = None

    def _detect_family(self) -> str:
        """Return model family: 'nllb', 'm2m100', or 'marian'."""
        nm = (self.model_name or "").lower()
        if "m2m100" in nm:
            return "m2m100"
        if nm.startswith("helsinki-nlp/opus-mt"):
            return "marian"
        return "nllb"

    def prepare(self):
        """Eagerly load model/tokenizer before the pipeline starts"""
        with self._lock:
            self.last_error = None
            if self.model is not None and self._loaded_model_name == self.model_name:
                return

            logger.info(f"Loading model {self.model_name} on {self.device}...")
            start_time = time.time()
            try:
                model = AutoModelForSeq2SeqLM.from_pretrained(self.model_name).to(self.device)
                model.eval()
                tokenizer = AutoTokenizer.from_pretrained(self.model_name)
            except Exception as e:
                self.model = None
                self.tokenizer = None
                self._loaded_model_name = None
                self.last_error = str(e)
                logger.error(f"Error loading model: {e}")
                raise TranslatorUnavailableError(
                    f"Translation model {self.model_name} is not available: {e}"
                ) from e

            self.model = model
            self.tokenizer = tokenizer
            self._loaded_model_name = self.model_name
            logger.info(f"Model loaded successfully in {time.time() - start_time:.2f}s")

    @property
    def is_ready(self) -> bool:
        return self.model is not None and self.tokenizer is not None

    def _resolve_forced_bos_token_id(self, tgt_lang_code: str):
        """Resolve the target language token id across tokenizer versions."""
        tok = self.tokenizer

        get_lang_id = getattr(tok, "get_lang_id", None)
        if callable(get_lang_id):
            try:
                return int(get_lang_id(tgt_lang_code))
            except (KeyError, ValueError):
                pass

        lang_code_to_id = getattr(tok, "lang_code_to_id", None)
        if isinstance(lang_code_to_id, dict) and tgt_lang_code in lang_code_to_id:
            return int(lang_code_to_id[tgt_lang_code])

        # Language codes are plain tokens in the NLLB vocab
        token_id = tok.convert_tokens_to_ids(tgt_lang_code)
        if isinstance(token_id, int) and token_id != getattr(tok, "unk_token_id", None):
            return token_id
        return None

    def translate_batch(self, texts: List[str]) -> List[str]:
        if not texts:
            return []
        if not self.is_ready:
            raise TranslationError("Translator is not prepared")

        family = self._detect_family()
        batch_start = time.time()
        with self._lock:
            try:
                gen_kwargs = {"max_length": self.max_length}
                if family in ("nllb", "m2m100"):
                    src, tgt = (NLLB_SOURCE, NLLB_TARGET) if family == "nllb" else (M2M_SOURCE, M2M_TARGET)
                    if hasattr(self.tokenizer, "src_lang"):
                        self.tokenizer.src_lang = src
                    forced_bos_token_id = self._resolve_forced_bos_token_id(tgt)
                    if forced_bos_token_id is None:
                        raise TranslationError(f"Unable to resolve target language token id for {tgt}")
                    gen_kwargs["forced_bos_token_id"] = forced_bos_token_id

                inputs = self.tokenizer(texts, return_tensors="pt", padding=True, truncation=True).to(self.device)
                with torch.no_grad():
                    translated_tokens = self.model.generate(**inputs, **gen_kwargs)
                translated_texts = self.tokenizer.batch_decode(translated_tokens, skip_special_tokens=True)
            except TranslationError:
                raise
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Batch translation error: {e}")
                raise TranslationError(str(e)) from e

        logger.debug(f"Model translated {len(texts)} texts in {time.time() - batch_start:.2f}s")
        return [t.strip() for t in translated_texts]
