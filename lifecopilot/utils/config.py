"""
Configuration management for AWS services and application settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    service: str
    index_name: str
    dimension: int
    max_results: int
    refresh: str  # Write refresh policy; empty for Serverless, which rejects it
    lookup_retries: int
    lookup_delay: float


@dataclass
class ProjectionConfig:
    """Configuration for 2D coordinate projection and similarity ranking."""
    scale: float
    bound: float
    seed_components: int
    top_k: int


@dataclass
class RecomputeConfig:
    """Configuration for the background coordinate recompute scheduler."""
    max_workers: int
    serialize: bool
    not_found_retries: int
    retry_delay: float


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_embed: BedrockEmbedConfig
    opensearch: OpenSearchConfig
    projection: ProjectionConfig
    recompute: RecomputeConfig
    mcp: MCPConfig


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Titan G1 text embeddings are 1536-dimensional
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v1'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1536')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'aoss'),
                                         index_name=os.getenv('OPENSEARCH_INDEX', 'life_copilot'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION', '1536')),
                                         max_results=int(os.getenv('OPENSEARCH_MAX_RESULTS', '10000')),
                                         refresh=os.getenv('OPENSEARCH_REFRESH', ''),
                                         lookup_retries=int(os.getenv('OPENSEARCH_LOOKUP_RETRIES', '3')),
                                         lookup_delay=float(os.getenv('OPENSEARCH_LOOKUP_DELAY', '0.5')))

    projection_config = ProjectionConfig(scale=float(os.getenv('PROJECTION_SCALE', '1000')),
                                         bound=float(os.getenv('PROJECTION_BOUND', '10000')),
                                         seed_components=int(os.getenv('PROJECTION_SEED_COMPONENTS', '4')),
                                         top_k=int(os.getenv('SIMILARITY_TOP_K', '5')))

    recompute_config = RecomputeConfig(max_workers=int(os.getenv('RECOMPUTE_MAX_WORKERS', '4')),
                                       serialize=_env_flag('RECOMPUTE_SERIALIZE'),
                                       not_found_retries=int(os.getenv('RECOMPUTE_NOT_FOUND_RETRIES', '5')),
                                       retry_delay=float(os.getenv('RECOMPUTE_RETRY_DELAY', '1.0')))

    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_embed=bedrock_embed_config,
                     opensearch=opensearch_config,
                     projection=projection_config,
                     recompute=recompute_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
