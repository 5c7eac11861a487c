"""
Email domain reputation checks (MX, SPF and DMARC) over DNS.
"""
import logging
from typing import List, Optional

import dns.exception
import dns.resolver

from .errors import DomainUnverifiable
from .models import DomainInfo


logger = logging.getLogger(__name__)

SPF_PREFIX = "v=spf1"
DMARC_PREFIX = "v=DMARC1"


class DomainReputationChecker:
    """
    Looks up deliverability signals for a domain.

    Every lookup is bounded by ``timeout`` seconds; a timeout or any other
    resolver error counts as the signal being absent.
    """

    def __init__(self, timeout: float = 3.0, resolver: Optional[dns.resolver.Resolver] = None):
        self._resolver = resolver
        self.timeout = timeout

    @property
    def resolver(self) -> dns.resolver.Resolver:
        # Created on first use; reading resolv.conf fails on hosts without one
        if self._resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.timeout = self.timeout
            resolver.lifetime = self.timeout
            self._resolver = resolver
        return self._resolver

    def _resolve(self, name: str, rdtype: str) -> list:
        try:
            return list(self.resolver.resolve(name, rdtype, lifetime=self.timeout))
        except dns.exception.Timeout:
            logger.warning(f"DNS {rdtype} lookup for {name} timed out")
            return []
        except dns.exception.DNSException as e:
            logger.debug(f"DNS {rdtype} lookup for {name} failed: {e}")
            return []

    def _txt_records(self, name: str) -> List[str]:
        records = []
        for rdata in self._resolve(name, 'TXT'):
            records.append(b''.join(rdata.strings).decode('utf-8', errors='replace'))
        return records

    @staticmethod
    def _find(records: List[str], prefix: str) -> str:
        for txt in records:
            if txt.startswith(prefix):
                return txt
        return ""

    def check(self, domain: str) -> DomainInfo:
        """
        Collect MX, SPF and DMARC signals for a domain.

        Args:
            domain: Domain part of an email address

        Returns:
            DomainInfo with one flag per signal
        """
        info = DomainInfo(domain=domain)

        info.has_mx = bool(self._resolve(domain, 'MX'))

        info.spf_record = self._find(self._txt_records(domain), SPF_PREFIX)
        info.has_spf = bool(info.spf_record)

        info.dmarc_record = self._find(self._txt_records(f"_dmarc.{domain}"), DMARC_PREFIX)
        info.has_dmarc = bool(info.dmarc_record)

        return info

    def require_valid(self, domain: str) -> DomainInfo:
        """
        Raises:
            DomainUnverifiable: if any of MX, SPF or DMARC is missing
        """
        info = self.check(domain)
        if not info.is_valid:
            logger.info(f"Domain {domain} rejected, missing {', '.join(info.missing)}")
            raise DomainUnverifiable(domain, info.missing)
        return info
