"""CMS presets: configuration wrappers over the generic URL source adapter.

Each preset only decides URLs, envelopes and field mappings. Fetching,
mapping and pagination all go through the generic machinery.
"""

from typing import Callable, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field

from .adapter import DataTransform, FieldMapping, URLSource, URLSourceAuth


def _constant(value: str) -> Callable[[], str]:
    return lambda: value


def singularize(collection: str) -> str:
    """'posts' -> 'post', 'pages' -> 'page'."""
    return collection[:-1] if collection.endswith('s') else collection


def parse_drupal_type(node_type: str) -> str:
    """'node--project' -> 'project'."""
    return node_type[len('node--'):] if node_type.startswith('node--') else node_type


class ContentTypeMapping(BaseModel):
    """Per-content-type overrides."""
    content: Optional[str] = Field(default=None, description="Path to the main content field")
    fields: Dict[str, str] = Field(default_factory=dict, description="Extra target -> path mappings")
    use_attributes: bool = Field(default=True, description="Strapi v4 'attributes' envelope")


class PaginatedSource(BaseModel):
    """A paginated collection: ``build(page)`` gives the URL source for a page."""
    model_config = {'arbitrary_types_allowed': True}

    name: str
    build: Callable[[int], URLSource]
    page_size: int
    max_pages: int


# ---------------------------------------------------------------------------
# Drupal JSON:API
# ---------------------------------------------------------------------------

class DrupalConfig(BaseModel):
    base_url: str
    content_types: List[str]
    auth: Optional[URLSourceAuth] = None
    mappings: Dict[str, ContentTypeMapping] = Field(default_factory=dict)


def drupal_sources(config: DrupalConfig) -> List[URLSource]:
    sources = []
    base_url = config.base_url.rstrip('/')

    for content_type in config.content_types:
        mapping = config.mappings.get(content_type) or ContentTypeMapping()
        field_mapping: FieldMapping = {
            'id': 'id',
            'content': mapping.content or 'attributes.body.processed',
            'type': _constant(content_type),
            'title': 'attributes.title',
            'url': 'attributes.path.alias',
            **mapping.fields,
        }
        sources.append(URLSource(
            url=f'{base_url}/jsonapi/node/{content_type}',
            type='json',
            auth=config.auth,
            transform=DataTransform(document_path='data', field_mapping=field_mapping),
        ))

    return sources


# ---------------------------------------------------------------------------
# WordPress REST
# ---------------------------------------------------------------------------

class WordPressConfig(BaseModel):
    base_url: str
    post_types: List[str] = Field(default_factory=lambda: ['posts', 'pages'])
    auth: Optional[URLSourceAuth] = None
    per_page: int = Field(default=100, description="Items per page")
    max_pages: int = Field(default=10, description="Page cap per post type")
    mappings: Dict[str, ContentTypeMapping] = Field(default_factory=dict)


def wordpress_sources(config: WordPressConfig) -> List[PaginatedSource]:
    base_url = config.base_url.rstrip('/')
    paginated = []

    for post_type in config.post_types:
        mapping = config.mappings.get(post_type) or ContentTypeMapping()
        field_mapping: FieldMapping = {
            'id': 'id',
            'content': mapping.content or 'content.rendered',
            'type': _constant(singularize(post_type)),
            'title': 'title.rendered',
            'url': 'link',
            'slug': 'slug',
            'publishedAt': 'date',
            'modifiedAt': 'modified',
            'author': '_embedded.author.0.name',
            'featuredImage': '_embedded.wp:featuredmedia.0.source_url',
            'excerpt': 'excerpt.rendered',
            'categories': '_embedded.wp:term.0',
            'tags': '_embedded.wp:term.1',
            **mapping.fields,
        }

        def build(page: int, post_type=post_type, field_mapping=field_mapping) -> URLSource:
            return URLSource(
                url=f'{base_url}/wp-json/wp/v2/{post_type}?per_page={config.per_page}&page={page}&_embed',
                type='json',
                auth=config.auth,
                transform=DataTransform(field_mapping=field_mapping),
            )

        paginated.append(PaginatedSource(
            name=post_type, build=build,
            page_size=config.per_page, max_pages=config.max_pages,
        ))

    return paginated


# ---------------------------------------------------------------------------
# Sanity GROQ
# ---------------------------------------------------------------------------

class SanityQuery(BaseModel):
    query: str = Field(description="GROQ query, e.g. *[_type == \"post\"]")
    content: str = Field(description="Path to the main content field")
    fields: Dict[str, str] = Field(default_factory=dict)


class SanityConfig(BaseModel):
    project_id: str
    dataset: str
    api_version: str = 'v2024-01-01'
    token: Optional[str] = None
    use_cdn: bool = True
    queries: Dict[str, SanityQuery]


def sanity_base_url(config: SanityConfig) -> str:
    host = 'apicdn' if config.use_cdn else 'api'
    return f'https://{config.project_id}.{host}.sanity.io/{config.api_version}'


def sanity_sources(config: SanityConfig) -> List[URLSource]:
    base_url = sanity_base_url(config)
    headers = {'Authorization': f'Bearer {config.token}'} if config.token else {}
    sources = []

    for content_type, query in config.queries.items():
        field_mapping: FieldMapping = {
            'id': '_id',
            'content': query.content,
            'type': _constant(content_type),
            'title': 'title',
            'slug': 'slug.current',
            'publishedAt': 'publishedAt',
            'updatedAt': '_updatedAt',
            **query.fields,
        }
        sources.append(URLSource(
            url=f'{base_url}/data/query/{config.dataset}?query={quote(query.query, safe="")}',
            type='json',
            headers=dict(headers),
            transform=DataTransform(document_path='result', field_mapping=field_mapping),
        ))

    return sources


# ---------------------------------------------------------------------------
# Strapi v3 / v4
# ---------------------------------------------------------------------------

class StrapiConfig(BaseModel):
    base_url: str
    api_token: Optional[str] = None
    content_types: List[str]
    page_size: int = 100
    max_pages: int = 10
    mappings: Dict[str, ContentTypeMapping] = Field(default_factory=dict)


def _strapi_mapping(content_type: str, mapping: ContentTypeMapping) -> FieldMapping:
    type_name = _constant(singularize(content_type))
    if mapping.use_attributes:
        return {
            'id': 'id',
            'content': mapping.content or 'attributes.content',
            'type': type_name,
            'title': 'attributes.title',
            'slug': 'attributes.slug',
            'publishedAt': 'attributes.publishedAt',
            'updatedAt': 'attributes.updatedAt',
            **mapping.fields,
        }
    return {
        'id': 'id',
        'content': mapping.content or 'content',
        'type': type_name,
        'title': 'title',
        'slug': 'slug',
        'publishedAt': 'published_at',
        'updatedAt': 'updated_at',
        **mapping.fields,
    }


def strapi_sources(config: StrapiConfig) -> List[PaginatedSource]:
    base_url = config.base_url.rstrip('/')
    headers = {'Authorization': f'Bearer {config.api_token}'} if config.api_token else {}
    paginated = []

    for content_type in config.content_types:
        mapping = config.mappings.get(content_type) or ContentTypeMapping()
        field_mapping = _strapi_mapping(content_type, mapping)

        def build(page: int, content_type=content_type, field_mapping=field_mapping) -> URLSource:
            return URLSource(
                url=(f'{base_url}/api/{content_type}?pagination[page]={page}'
                     f'&pagination[pageSize]={config.page_size}&populate=*'),
                type='json',
                headers=dict(headers),
                transform=DataTransform(document_path='data', field_mapping=field_mapping),
            )

        paginated.append(PaginatedSource(
            name=content_type, build=build,
            page_size=config.page_size, max_pages=config.max_pages,
        ))

    return paginated
