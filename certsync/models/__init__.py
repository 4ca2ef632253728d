from certsync.models.customer import Customer
from certsync.models.domain import Domain, IPAddress, SSLRedirect, domain_to_ip
from certsync.models.certificate import CertificateRecord, PLATFORM_DOMAIN_ID
from certsync.models.certificate_log import CertificateLog, CertificateLogLevel
