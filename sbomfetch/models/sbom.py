import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class ExternalRef(BaseModel):
    reference_category: str | None = Field(alias='referenceCategory', default=None)
    reference_type: str | None = Field(alias='referenceType', default=None)
    reference_locator: str = Field(alias='referenceLocator')

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class SbomPackage(BaseModel):
    """One SBOM entry with its external reference locators."""
    name: str = ''
    version: str | None = None
    spdx_id: str | None = Field(alias='SPDXID', default=None)
    external_refs: list[ExternalRef] = Field(alias='externalRefs', default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class SbomDocument(BaseModel):
    """Read-only view over an SPDX or CycloneDX JSON document."""
    name: str | None = None
    packages: list[SbomPackage] = Field(default_factory=list)
    source: Path | None = None

    model_config = ConfigDict(extra='ignore')

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Path | None = None) -> 'SbomDocument':
        if 'components' in data or data.get('bomFormat') == 'CycloneDX':
            packages = [
                SbomPackage(
                    name=c.get('name', ''),
                    version=c.get('version'),
                    external_refs=[
                        ExternalRef(
                            reference_category='PACKAGE-MANAGER',
                            reference_type='purl',
                            reference_locator=c['purl'],
                        ),
                    ] if c.get('purl') else [],
                )
                for c in _walk_components(data.get('components') or [])
            ]
            name = ((data.get('metadata') or {}).get('component') or {}).get('name')
            return cls(name=name, packages=packages, source=source)

        return cls(
            name=data.get('name'),
            packages=[SbomPackage.model_validate(p) for p in data.get('packages') or []],
            source=source,
        )

    @classmethod
    def load(cls, path: Path) -> 'SbomDocument':
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"SBOM document is not a JSON object: {path}")
        return cls.from_dict(data, source=path)

    def locators(self) -> list[str]:
        """Every reference locator, in document order."""
        return [
            ref.reference_locator
            for package in self.packages
            for ref in package.external_refs
        ]


def _walk_components(components: list[dict[str, Any]]):
    for component in components:
        yield component
        yield from _walk_components(component.get('components') or [])
