"""OpenAI Responses API client for text extraction."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from teleweb_bot.services.ocr import OcrClient


@dataclass
class OpenAIOcrClient(OcrClient):
    """OCR client backed by the OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIOcrClient":
        """Create an OpenAI OCR client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def extract_text(
        self, *, model: str, image_data_url: str, prompt: str
    ) -> str:
        """Ask the model to transcribe the text in an image."""
        response = await self.client.responses.create(
            model=model,
            input=[
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": prompt},
                        {"type": "input_image", "image_url": image_data_url},
                    ],
                }
            ],
            store=False,
        )
        return response.output_text or ""
