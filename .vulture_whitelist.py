from pki.domain.descriptors import CADescriptor, KeySpec, NameEntry, SigningProfile
from pki.domain.models import CertificateAuthority, CertificateMaterial, KeystoreBundle
from pki.domain.states import ArtifactKind, SecretConvention
from pki.keystore.keytool import KeystoreEntry
from pki.publish.secret_store import DryRunSecretStore, SecretStore
from main import setup_tracing
from shared.config import Settings

# Pydantic Settings
Settings.model_config
Settings.APP_NAME
Settings.LOG_LEVEL
Settings.OTEL_CONSOLE_EXPORT
Settings.KEYTOOL_PATH
Settings.PASSWORD_SERVER_KEYSTORE
Settings.PASSWORD_PEER_KEYSTORE
Settings.PASSWORD_CLIENT_KEYSTORE
Settings.KUBECONFIG
Settings.KUBE_CONTEXT
Settings.KUBE_IN_CLUSTER

# Descriptor fields (populated from cfssl JSON)
KeySpec.check_size
NameEntry.C
NameEntry.ST
NameEntry.L
NameEntry.O
NameEntry.OU
SigningProfile.usages
CADescriptor.ca

# Value objects (read by tests and log output)
CertificateAuthority.csr_pem
CertificateMaterial.csr_path
CertificateMaterial.thumbprint
KeystoreBundle.truststore_jks
KeystoreEntry.is_trusted_cert

# Enums
ArtifactKind.CSR
SecretConvention.CONTAINER_KEYS

# Protocol members
SecretStore.ensure_namespace
DryRunSecretStore.get

# Telemetry setup
setup_tracing
