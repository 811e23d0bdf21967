import base64
import json
import subprocess
import time
from pathlib import Path

import structlog

from sbomfetch.core.config import get_config
from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.exceptions import AttestationError
from sbomfetch.core.stats import ResolveStats

logger = structlog.get_logger('attestation_service')


class AttestationService:
    """Retrieves the SPDX SBOM attested for a container image with cosign."""

    def __init__(self, context: ResolutionContext, stats: ResolveStats | None = None, verify: bool = True):
        self.context = context
        self.stats = stats or ResolveStats()
        self.verify = verify
        self.config = get_config()

    def _run(self, command: list[str]) -> str:
        start_time = time.time()
        try:
            process = subprocess.run(
                command, capture_output=True, text=True, check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.error(
                'COSIGN Command Failed',
                command=' '.join(command),
                returncode=e.returncode,
                error_output=e.stderr,
                _style='bold red',
            )
            raise AttestationError(
                f"cosign {command[1]} failed for {command[-1]}: {(e.stderr or '').strip()}",
            ) from e
        logger.info(
            'COSIGN Command',
            command=' '.join(command),
            returncode=process.returncode,
            size=len(process.stdout),
            elapsed=f"{time.time() - start_time:.3f}s",
        )
        return process.stdout

    def verify_command(self, image: str) -> list[str]:
        attestation = self.config.attestation
        return [
            'cosign', 'verify-attestation',
            '--type', 'spdxjson',
            '--certificate-identity', attestation.identity,
            '--certificate-oidc-issuer', attestation.oidc_issuer,
            image,
        ]

    def download_command(self, image: str) -> list[str]:
        return [
            'cosign', 'download', 'attestation',
            '--platform', f"linux/{self.context.arch.value}",
            '--predicate-type', self.config.attestation.predicate_type,
            image,
        ]

    def fetch_image_sbom(self, image: str, dest: Path) -> Path:
        """
        Verify and download the image SBOM attestation, writing its
        predicate to `dest`.

        Raises:
            AttestationError if cosign fails or returns no SPDX predicate
        """
        if dest.is_file():
            logger.info('Image SBOM present, skipping download', image=image, sbom=str(dest), _style='dim')
            self.stats.inc('cache_hits')
            return dest

        commands = [self.download_command(image)]
        if self.verify:
            commands.insert(0, self.verify_command(image))

        if self.context.dry_run:
            for command in commands:
                logger.info('Would run', command=' '.join(command), _style='dim')
            return dest

        for command in commands[:-1]:
            self._run(command)
        output = self._run(commands[-1])

        predicate = self.extract_predicate(output, image)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, 'w', encoding='utf-8') as f:
            json.dump(predicate, f, indent=2)
        self.stats.inc('sboms')
        logger.info('Saved image SBOM', image=image, sbom=str(dest))
        return dest

    def extract_predicate(self, output: str, image: str) -> dict:
        """Decode DSSE envelopes (one JSON object per line) into the SPDX predicate."""
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                envelope = json.loads(line)
                # DSSE payload is a base64 in-toto statement
                statement = json.loads(base64.b64decode(envelope['payload']))
            except (ValueError, KeyError, TypeError) as e:
                logger.debug('Skipping undecodable attestation', error=str(e))
                continue
            if not str(statement.get('predicateType', '')).startswith(self.config.attestation.predicate_type):
                continue
            predicate = statement.get('predicate')
            # Some cosign versions emit the predicate as a JSON string
            if isinstance(predicate, str):
                try:
                    predicate = json.loads(predicate)
                except ValueError:
                    continue
            if isinstance(predicate, dict):
                return predicate
        raise AttestationError(f"No SPDX attestation found for {image}")
