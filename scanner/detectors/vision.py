import io
import json
import base64
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional, Union

import openai
from openai import OpenAI
from PIL import Image
from pydantic import BaseModel, Field, StrictFloat, StrictInt, ValidationError

from ..config import ScannerConfig
from ..models import BoundingBox, DetectedSurface
from .base import (
    FrameDetector,
    FrameInput,
    FrameSkippedError,
    MalformedResponseError,
    TransientDetectionError,
)

OPTIMIZED_JPEG_QUALITY = 85

# Numbers must arrive as JSON numbers, not numeric strings
Number = Union[StrictInt, StrictFloat]

SURFACE_DETECTION_PROMPT = """You are analyzing a video frame to identify suitable areas for product placement in advertising.

TASK: Find areas where a product (like a beverage, phone, or small object) could be naturally placed.

LOOK FOR:
1. **Flat surfaces** - Tables, desks, countertops, shelves, nightstands, coffee tables
2. **Empty spaces** - Clear areas beside or near the subject where a product could appear
3. **Natural placement zones** - Lower third of frame, surfaces in foreground/background
4. **Contextual fits** - Kitchen counter for food products, desk for tech products, etc.

DO NOT FLAG:
- Areas blocked by people or moving hands
- Surfaces that are too cluttered
- Areas outside the main visual focus
- Vertical surfaces (walls) unless they have shelves

For each suitable area found, provide:
- **location**: Bounding box as {x, y, width, height} in percentages (0-100) of frame dimensions
- **surface_type**: What it is (desk, table, shelf, counter, open_space, etc.)
- **confidence**: 0.0 to 1.0 based on how suitable it is for product placement
- **reasoning**: Brief explanation of why this spot works

RESPOND IN THIS EXACT JSON FORMAT:
{
  "surfaces_found": true/false,
  "frame_description": "Brief description of what's in the frame",
  "surfaces": [
    {
      "location": {"x": 20, "y": 60, "width": 30, "height": 25},
      "surface_type": "desk",
      "confidence": 0.85,
      "reasoning": "Clear wooden desk surface in lower right, good lighting, unobstructed"
    }
  ],
  "recommended_placement": {
    "location": {"x": ..., "y": ..., "width": ..., "height": ...},
    "reason": "Best overall spot because..."
  }
}

If NO suitable surfaces exist in this frame, respond with:
{
  "surfaces_found": false,
  "frame_description": "Description of frame",
  "surfaces": [],
  "recommended_placement": null,
  "no_surface_reason": "Why no placement works (e.g., 'close-up face shot', 'too much motion blur', 'fully outdoor scene with no surfaces')"
}

Analyze the frame now:"""


class SurfaceLocation(BaseModel):
    """Bounding box in percentages of the frame"""
    x: Number = Field(description="Left edge, 0-100")
    y: Number = Field(description="Top edge, 0-100")
    width: Number = Field(description="Width, 0-100")
    height: Number = Field(description="Height, 0-100")


class VisionSurface(BaseModel):
    """One placement area reported by the model"""
    location: SurfaceLocation
    surface_type: str = Field(default="surface", description="desk, table, shelf, counter, ...")
    confidence: Number = Field(description="Suitability 0-1")
    reasoning: str = ""


class SurfaceDetectionResponse(BaseModel):
    """Structured output from the vision model"""
    surfaces_found: bool
    frame_description: str = ""
    surfaces: List[VisionSurface] = Field(default_factory=list)
    recommended_placement: Optional[Dict[str, Any]] = None
    no_surface_reason: Optional[str] = None


def strip_code_fences(raw: str) -> str:
    """Remove a Markdown ``` / ```json wrapper around a response"""
    text = raw.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_vision_response(raw: str) -> SurfaceDetectionResponse:
    """
    Parse a model answer into SurfaceDetectionResponse.

    Surface entries missing a numeric location or confidence are dropped
    individually; anything else unusable raises MalformedResponseError.
    """
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Vision response is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("surfaces_found"), bool):
        raise MalformedResponseError("Vision response is missing surfaces_found")

    entries = data.get("surfaces")
    valid_surfaces = []
    for entry in entries if isinstance(entries, list) else []:
        try:
            valid_surfaces.append(VisionSurface.model_validate(entry))
        except ValidationError:
            continue

    placement = data.get("recommended_placement")
    no_surface_reason = data.get("no_surface_reason")
    return SurfaceDetectionResponse(
        surfaces_found=data["surfaces_found"],
        frame_description=str(data.get("frame_description") or ""),
        surfaces=valid_surfaces,
        recommended_placement=placement if isinstance(placement, dict) else None,
        no_surface_reason=str(no_surface_reason) if no_surface_reason else None,
    )


def optimize_frame(frame_path: str, max_dimension: int) -> bytes:
    """Downscale to fit max_dimension (never enlarging) and re-encode as JPEG"""
    try:
        with Image.open(frame_path) as img:
            img = img.convert("RGB")
            img.thumbnail((max_dimension, max_dimension))
            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=OPTIMIZED_JPEG_QUALITY)
            return buffer.getvalue()
    except OSError:
        with open(frame_path, "rb") as image_file:
            return image_file.read()


def format_surface_type(raw: str) -> str:
    label = raw.strip().replace("_", " ") or "Surface"
    return label[0].upper() + label[1:]


class VisionModelDetector(FrameDetector):
    """Asks a multimodal model where a product could be placed in the frame"""

    name = "vision"

    def __init__(self, config: ScannerConfig, client: Optional[OpenAI] = None):
        self.config = config
        self.timeout = config.AI_TIMEOUT_SEC
        # Retries are owned by RetryingDetector
        self.client = client or OpenAI(timeout=self.timeout, max_retries=0)

    def detect(self, frame: FrameInput) -> List[DetectedSurface]:
        parsed = parse_vision_response(self._request(frame))

        if not parsed.surfaces_found or not parsed.surfaces:
            return []

        return [
            DetectedSurface(
                video_id=None,
                timestamp=frame.timestamp,
                surface_type=format_surface_type(surface.surface_type),
                confidence=surface.confidence,
                bounding_box=BoundingBox.from_percentages(
                    surface.location.x,
                    surface.location.y,
                    surface.location.width,
                    surface.location.height,
                ),
            ).normalized()
            for surface in parsed.surfaces
        ]

    def _request(self, frame: FrameInput) -> str:
        """Send one frame to the model and return the raw text answer"""
        image_bytes = optimize_frame(frame.path, self.config.AI_IMAGE_MAX_DIMENSION)
        base64_image = base64.b64encode(image_bytes).decode('utf-8')

        def create():
            return self.client.chat.completions.create(
                model=self.config.VISION_MODEL,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": SURFACE_DETECTION_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}
                            }
                        ]
                    }
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
                timeout=self.timeout,
            )

        try:
            response = self._call_with_deadline(create)
        except openai.APITimeoutError as e:
            raise TransientDetectionError(f"Vision request timed out after {self.timeout:g}s") from e
        except openai.APIConnectionError as e:
            raise TransientDetectionError(f"Vision service unreachable: {e}") from e
        except openai.RateLimitError as e:
            raise FrameSkippedError(f"Vision quota exceeded: {e}") from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise FrameSkippedError(f"Vision authentication failed: {e}") from e
        except openai.APIStatusError as e:
            if e.status_code >= 500:
                raise TransientDetectionError(f"Vision service error {e.status_code}") from e
            raise FrameSkippedError(f"Vision request rejected with {e.status_code}") from e

        if not response.choices or not response.choices[0].message.content:
            raise MalformedResponseError("Vision response contained no text")
        return response.choices[0].message.content

    def _call_with_deadline(self, call):
        """
        Run call on a helper thread and give up after AI_TIMEOUT_SEC overall.

        The client timeout only bounds each connect or read, so a reply that
        trickles in slowly would otherwise hold the scan indefinitely. An
        abandoned call keeps running on its thread until the client gives up.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vision-request")
        future = executor.submit(call)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise TransientDetectionError(f"Vision request exceeded {self.timeout:g}s") from e
        finally:
            executor.shutdown(wait=False)
