"""Source definition loader for ContentFoundry.

Loads declarative ingestion sources from YAML files. One file per source::

    # sources/docs-site.yaml
    kind: sitemap
    agent_id: support-bot
    options:
      base_url: https://docs.example.com
      include_patterns: [/guides/]
      max_pages: 50
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

SOURCE_KINDS = ('sitemap', 'urls', 'rss', 'url', 'drupal', 'wordpress', 'sanity', 'strapi')


@dataclass
class SourceDefinition:
    """A named ingestion source: a kind plus the options of its config model."""
    name: str
    kind: str
    options: Dict[str, Any] = field(default_factory=dict)
    agent_id: Optional[str] = None
    enabled: bool = True

    def __post_init__(self):
        if not self.name:
            raise ValueError("Source name cannot be empty")

        if self.kind not in SOURCE_KINDS:
            raise ValueError(f"Invalid source kind: {self.kind}")

        if not isinstance(self.options, dict):
            raise ValueError("Source options must be a mapping")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceDefinition':
        return cls(
            name=data['name'],
            kind=data['kind'],
            options=data.get('options') or {},
            agent_id=data.get('agent_id'),
            enabled=data.get('enabled', True),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'name': self.name,
            'kind': self.kind,
            'options': dict(self.options),
            'enabled': self.enabled,
        }
        if self.agent_id:
            result['agent_id'] = self.agent_id
        return result


class SourceLoader:
    """Loads source definitions from a directory of YAML files."""

    def __init__(self, sources_dir: Optional[Path] = None):
        """Initialize source loader.

        Args:
            sources_dir: Directory containing source YAML files.
                        Defaults to the current working directory's 'sources'.
        """
        self.sources_dir = Path(sources_dir) if sources_dir is not None else Path('sources')
        self._cache: Dict[str, SourceDefinition] = {}
        self._last_modified: Dict[str, float] = {}

    def load_source(self, source_name: str) -> Optional[SourceDefinition]:
        """Load the definition for a specific source.

        Args:
            source_name: Name of the source (without .yaml extension)

        Returns:
            SourceDefinition if found and valid, None otherwise
        """
        yaml_file = self.sources_dir / f"{source_name}.yaml"

        if not yaml_file.exists():
            logger.warning(f"Source definition not found: {yaml_file}")
            return None

        current_mtime = yaml_file.stat().st_mtime
        if (source_name in self._cache and
                self._last_modified.get(source_name, 0) >= current_mtime):
            return self._cache[source_name]

        try:
            with open(yaml_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)

            if not isinstance(data, dict):
                logger.error(f"Empty or invalid YAML file: {yaml_file}")
                return None

            # File name wins over the declared name
            if data.get('name', source_name) != source_name:
                logger.warning(f"Source name mismatch in {yaml_file}: {data['name']} != {source_name}")
            data['name'] = source_name

            definition = SourceDefinition.from_dict(data)

            self._cache[source_name] = definition
            self._last_modified[source_name] = current_mtime

            logger.info(f"Loaded source definition: {source_name} ({definition.kind})")
            return definition

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML file {yaml_file}: {e}")
            return None
        except (ValueError, KeyError) as e:
            logger.error(f"Invalid source definition in {yaml_file}: {e}")
            return None

    def load_all_sources(self) -> Dict[str, SourceDefinition]:
        """Load every definition in the sources directory."""
        sources = {}

        if not self.sources_dir.exists():
            logger.warning(f"Sources directory not found: {self.sources_dir}")
            return sources

        for yaml_file in sorted(self.sources_dir.glob("*.yaml")):
            definition = self.load_source(yaml_file.stem)
            if definition:
                sources[yaml_file.stem] = definition

        logger.info(f"Loaded {len(sources)} source definitions")
        return sources

    def get_enabled_sources(self) -> Dict[str, SourceDefinition]:
        return {name: d for name, d in self.load_all_sources().items() if d.enabled}

    def reload_cache(self):
        """Clear cache to force reload of all definitions."""
        self._cache.clear()
        self._last_modified.clear()
        logger.info("Source definition cache cleared")
