"""
Amazon Bedrock embedding client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockEmbedConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class EmbeddingProviderError(Exception):
    """Raised when the embedding provider fails. Callers may retry."""
    pass


class BedrockEmbed:
    """Amazon Bedrock embedding client with retry logic and error handling."""

    def __init__(self, config: BedrockEmbedConfig):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
        """
        self.config = config
        self.model_id = config.model_id
        self.dimension = config.dimension

        self.bedrock = boto3.client(service_name='bedrock-runtime', region_name=config.region)

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id} ({self.dimension} dimensions)')

    def _call_with_retry(self, data: dict) -> dict:
        """
        Make a Bedrock API call with retry logic.

        Args:
            data: Request data dictionary

        Returns:
            Response dictionary from Bedrock API

        Raises:
            EmbeddingProviderError: If all retry attempts fail
        """
        body = json.dumps(data)

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock Embed request attempt {attempt + 1}/{self.config.retry_attempts}')

                response = self.bedrock.invoke_model(body=body,
                                                     modelId=self.model_id,
                                                     accept='application/json',
                                                     contentType='application/json')

                result = json.loads(response.get('body').read())
                logger.debug('Bedrock Embed request successful')
                return result

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise EmbeddingProviderError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock Embed: {e}')
                raise EmbeddingProviderError(f'Unexpected Bedrock Embed error: {e}')

        raise EmbeddingProviderError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts')

    def _build_request(self, text: str) -> dict:
        model = self.model_id.lower()
        if 'titan-embed-text-v1' in model:
            # G1 has a fixed output size and rejects the dimensions field
            return {'inputText': text}
        if 'titan' in model:
            return {'inputText': text, 'dimensions': self.dimension}
        if 'cohere' in model:
            return {'input_type': 'search_document', 'texts': [text]}
        raise EmbeddingProviderError(f'Unsupported embedding model: {self.model_id}')

    def _parse_response(self, response: dict) -> List[float]:
        if 'cohere' in self.model_id.lower():
            embeddings = response.get('embeddings') or []
            embedding = embeddings[0] if embeddings else None
        else:
            embedding = response.get('embedding')

        if not embedding:
            raise EmbeddingProviderError(f'Bedrock Embed returned no embedding for model {self.model_id}')
        if len(embedding) != self.dimension:
            raise EmbeddingProviderError(f'Expected {self.dimension} dimensions from {self.model_id}, got {len(embedding)}')

        return [float(value) for value in embedding]

    def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for an entity's composed text.

        Args:
            text: Text to embed

        Returns:
            List of embedding values of the configured dimension

        Raises:
            EmbeddingProviderError: If embedding generation fails
        """
        if not text or not text.strip():
            raise EmbeddingProviderError('Cannot embed empty text')

        try:
            response = self._call_with_retry(self._build_request(text))
            return self._parse_response(response)

        except EmbeddingProviderError:
            raise
        except Exception as e:
            logger.error(f'Error generating embedding: {e}')
            raise EmbeddingProviderError(f'Embedding failed: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_embedding = self.embed('test')
            return len(test_embedding) == self.dimension

        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False
