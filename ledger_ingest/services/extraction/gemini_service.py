"""
Extraction Service using Gemini

DESIGN DECISION: Gemini reads the uploaded file directly and returns JSON
matching one of our extraction schemas:
1. PDFs go in as inline application/pdf data (they arrive base64-encoded)
2. Images go in as inline image data
3. CSV and other text goes in as plain text, cut to a fixed character budget
4. The JSON that comes back is validated with pydantic before anyone sees it

BOUNDARIES:
- This service ONLY extracts; it never writes to storage
- It holds no state between calls. The API key belongs to the user and is
  passed in on every call, so a fresh API client is built per call instead
  of using the SDK's process-wide ``configure()``
- A response failing schema validation is rejected whole (ExtractionError)
"""

import asyncio
import base64
import json
from typing import Optional, Union

import google.generativeai as genai
from google.ai import generativelanguage as glm
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger_ingest.config import GeminiSettings, get_settings
from ledger_ingest.errors import ConfigurationError, ExtractionError
from ledger_ingest.models.documents import FileType
from ledger_ingest.models.extraction import (
    SCHEMAS,
    ExtractedReceipt,
    ExtractedStatement,
    SourceKind,
)


Content = Union[str, bytes]
ExtractionResult = Union[ExtractedStatement, ExtractedReceipt]

MISSING_API_KEY_MESSAGE = "Gemini API key not found for user"

_TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.ResourceExhausted,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
)

_INSTRUCTIONS = {
    SourceKind.STATEMENT: (
        "Extract financial statement data from the following {file_format} content.\n"
        "Return the account name, the statement period (start and end dates), the "
        "opening balance, the closing balance, and every transaction with its date, "
        "amount, description and merchant.\n"
        "Amounts are signed: money coming into the account is positive, money "
        "going out is negative. Dates are ISO-8601 (YYYY-MM-DD)."
    ),
    SourceKind.RECEIPT: (
        "Extract receipt data from the following {file_format} content.\n"
        "Return the date, merchant name, total amount, tax amount, and every item "
        "with its description, quantity, unit price and total price.\n"
        "Dates are ISO-8601 (YYYY-MM-DD)."
    ),
}

_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


_GEMINI_TYPES = {
    "string": glm.Type.STRING,
    "number": glm.Type.NUMBER,
    "integer": glm.Type.INTEGER,
    "boolean": glm.Type.BOOLEAN,
    "array": glm.Type.ARRAY,
    "object": glm.Type.OBJECT,
}


def to_gemini_schema(json_schema: dict, defs: Optional[dict] = None) -> glm.Schema:
    """
    Convert a pydantic JSON schema into the Schema the API enforces.

    Handles the subset our extraction models produce: ``$ref`` into
    ``$defs``, ``Optional[X]`` (``anyOf`` with null) and the primitive,
    array and object types.
    """
    if defs is None:
        defs = json_schema.get("$defs", {})

    nullable = False
    if "anyOf" in json_schema:
        options = [o for o in json_schema["anyOf"] if o.get("type") != "null"]
        if len(options) != 1:
            raise ValueError(f"Unsupported union in schema: {json_schema['anyOf']}")
        nullable = len(options) < len(json_schema["anyOf"])
        json_schema = {**options[0], "description": json_schema.get("description", "")}

    if "$ref" in json_schema:
        resolved = defs[json_schema["$ref"].rsplit("/", 1)[-1]]
        description = json_schema.get("description") or resolved.get("description", "")
        json_schema = {**resolved, "description": description}

    kind = json_schema["type"]
    fields = {
        "type_": _GEMINI_TYPES[kind],
        "nullable": nullable,
        "description": json_schema.get("description", ""),
    }
    if kind == "array":
        fields["items"] = to_gemini_schema(json_schema["items"], defs)
    elif kind == "object":
        fields["properties"] = {
            name: to_gemini_schema(prop, defs)
            for name, prop in json_schema.get("properties", {}).items()
        }
        fields["required"] = list(json_schema.get("required", []))
    return glm.Schema(**fields)


def response_schema(source_kind: SourceKind) -> glm.Schema:
    return to_gemini_schema(SCHEMAS[SourceKind(source_kind)].model_json_schema())


def truncate_text(text: str, max_chars: int) -> str:
    """
    Cut text to the character budget.

    Lossy on purpose: long statements lose their tail rather than failing.
    """
    return text[:max_chars]


def detect_image_mime_type(data: bytes) -> str:
    """Best-effort MIME type from magic bytes; JPEG when unknown."""
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:12] in (b"ftypheic", b"ftypheix", b"ftypmif1"):
        return "image/heic"
    return "image/jpeg"


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


class GeminiExtractionService:
    """
    Extraction client for statements and receipts.

    IMPORTANT BOUNDARIES:
    1. Missing credentials are a ConfigurationError, raised before any call
    2. Network failures, timeouts and schema mismatches are ExtractionError
    3. Nothing is persisted here
    """

    # Backoff between retries of transient API errors
    retry_wait = wait_exponential(multiplier=1, min=2, max=10)

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        max_text_chars: Optional[int] = None,
    ):
        self._settings = settings or get_settings().gemini
        if max_text_chars is None:
            max_text_chars = get_settings().ingestion.max_text_chars
        self._max_text_chars = max_text_chars

    @property
    def max_text_chars(self) -> int:
        return self._max_text_chars

    def build_parts(
        self,
        content: Content,
        source_kind: SourceKind,
        file_format: FileType,
    ) -> list[glm.Part]:
        """
        Build the request parts: instructions first, then the file.

        PDF content is expected base64-encoded (raw bytes are accepted too).
        Image bytes are sent inline. Everything else is sent as text
        truncated to ``max_text_chars``.
        """
        file_format = FileType(file_format)
        schema = SCHEMAS[source_kind]
        instructions = _INSTRUCTIONS[source_kind].format(file_format=file_format.value)
        instructions += (
            "\n\nRespond with a single JSON object matching this JSON schema:\n"
            + json.dumps(schema.model_json_schema())
        )
        parts = [glm.Part(text=instructions)]

        if file_format == FileType.PDF:
            data = base64.b64decode(content) if isinstance(content, str) else content
            parts.append(
                glm.Part(inline_data=glm.Blob(mime_type="application/pdf", data=data))
            )
        elif file_format == FileType.IMAGE and isinstance(content, bytes):
            parts.append(
                glm.Part(inline_data=glm.Blob(
                    mime_type=detect_image_mime_type(content),
                    data=content,
                ))
            )
        else:
            if isinstance(content, bytes):
                content = content.decode("utf-8", errors="replace")
            parts.append(
                glm.Part(text="File content:\n" + truncate_text(content, self._max_text_chars))
            )
        return parts

    def build_request(
        self,
        parts: list[glm.Part],
        source_kind: SourceKind,
    ) -> glm.GenerateContentRequest:
        """The generateContent request, constrained to the schema for ``source_kind``."""
        return glm.GenerateContentRequest(
            model=f"models/{self._settings.model_name}",
            contents=[glm.Content(role="user", parts=parts)],
            generation_config=glm.GenerationConfig(
                temperature=self._settings.temperature,
                max_output_tokens=self._settings.max_output_tokens,
                response_mime_type="application/json",
                response_schema=response_schema(source_kind),
            ),
        )

    async def _generate(self, api_key: str, request: glm.GenerateContentRequest) -> str:
        """Send one generateContent request and return the response text."""
        client = glm.GenerativeServiceAsyncClient(client_options={"api_key": api_key})

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=self.retry_wait,
            reraise=True,
        ):
            with attempt:
                response = await client.generate_content(request=request)

        wrapped = genai.types.GenerateContentResponse.from_response(response)
        try:
            return wrapped.text
        except ValueError as e:
            raise ExtractionError(f"Gemini returned no usable content: {e}")

    def parse_response(self, text: str, source_kind: SourceKind) -> ExtractionResult:
        """
        Validate raw model output against the schema for ``source_kind``.

        Raises:
            ExtractionError: If the output is not valid JSON for the schema
        """
        schema = SCHEMAS[source_kind]
        try:
            return schema.model_validate_json(_strip_code_fence(text))
        except ValidationError as e:
            problems = [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
            raise ExtractionError(
                f"Model response failed {source_kind.value} schema validation "
                f"({len(problems)} problems, first: {problems[0]['loc'] or '<root>'}: "
                f"{problems[0]['msg']})",
                details={"problems": problems},
            )

    async def extract(
        self,
        content: Content,
        source_kind: SourceKind,
        file_format: FileType,
        api_key: Optional[str],
    ) -> ExtractionResult:
        """
        Extract structured data from file content.

        Args:
            content: base64 text for PDFs, bytes for images, text otherwise
            source_kind: Which schema the model must fill
            file_format: The raw file's type
            api_key: The user's Gemini API key

        Raises:
            ConfigurationError: If no API key was supplied
            ExtractionError: On API failure, timeout or schema mismatch
        """
        if not api_key or not api_key.strip():
            raise ConfigurationError(MISSING_API_KEY_MESSAGE)

        source_kind = SourceKind(source_kind)
        request = self.build_request(
            self.build_parts(content, source_kind, file_format),
            source_kind,
        )

        try:
            text = await asyncio.wait_for(
                self._generate(api_key, request),
                timeout=self._settings.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ExtractionError(
                f"Extraction timed out after {self._settings.request_timeout_seconds:g}s"
            )
        except ExtractionError:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise ExtractionError(f"Gemini request failed: {e}")
        except Exception as e:
            # Transport and auth failures surface outside the API error hierarchy.
            raise ExtractionError(f"Gemini request failed: {str(e) or type(e).__name__}")

        return self.parse_response(text, source_kind)

    async def extract_statement(
        self,
        content: Content,
        file_format: FileType,
        api_key: Optional[str],
    ) -> ExtractedStatement:
        return await self.extract(content, SourceKind.STATEMENT, file_format, api_key)

    async def extract_receipt(
        self,
        content: Content,
        file_format: FileType,
        api_key: Optional[str],
    ) -> ExtractedReceipt:
        return await self.extract(content, SourceKind.RECEIPT, file_format, api_key)
