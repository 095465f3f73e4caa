"""TLS material for the request listener.

A self-signed ECDSA P-256 certificate is enough for development; its PEM is
also the trust anchor clients load. Production deployments point
``tls_cert_path``/``tls_key_path`` at a certificate from a trusted authority.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import ssl
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .paths import ensure_private_dir

log = logging.getLogger("vrcd.tls")


@dataclass(frozen=True)
class TLSMaterial:
    cert_pem: bytes
    key_pem: bytes


def generate_self_signed(
    hostname: str = "localhost",
    *,
    lifetime: timedelta = timedelta(hours=24),
) -> TLSMaterial:
    """Create a P-256 key and a self-signed server/client certificate."""
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(tz=timezone.utc)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])

    alt_names: list[x509.GeneralName] = [x509.DNSName(hostname)]
    if hostname == "localhost":
        alt_names.append(x509.IPAddress(ipaddress.ip_address("127.0.0.1")))

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(hours=1))
        .not_valid_after(now + lifetime)
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
            ),
            critical=False,
        )
        .sign(private_key=key, algorithm=hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return TLSMaterial(cert_pem=cert_pem, key_pem=key_pem)


def write_material(material: TLSMaterial, cert_path: str | Path, key_path: str | Path) -> None:
    cert_p = Path(cert_path)
    key_p = Path(key_path)
    for parent in {cert_p.parent, key_p.parent}:
        ensure_private_dir(parent)
    cert_p.write_bytes(material.cert_pem)
    key_p.write_bytes(material.key_pem)
    os.chmod(key_p, 0o600)


def ensure_material(cert_path: str | Path, key_path: str | Path, hostname: str = "localhost") -> bool:
    """Generate a self-signed pair unless both files exist. Returns True if created."""
    if Path(cert_path).exists() and Path(key_path).exists():
        return False
    write_material(generate_self_signed(hostname), cert_path, key_path)
    log.info("Generated self-signed certificate cert=%s host=%s", cert_path, hostname)
    return True


def server_ssl_context(cert_path: str | Path, key_path: str | Path) -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
    return ctx

