from typing import Iterable, Optional, Tuple


class DomainFilter:
    """
    Decides whether requests to a host are eligible for caching.

    A host is eligible if it is one of the configured domains or a sub-domain of
    one. With no configured domains, every host is eligible.
    """

    def __init__(self, domains: Iterable[str] = ()) -> None:
        self.__domains = normalize_domains(domains)

    @property
    def domains(self) -> Tuple[str, ...]:
        return self.__domains

    def allows(self, hostname: Optional[str]) -> bool:
        if not self.__domains:
            return True
        if not hostname:
            return False

        hostname = hostname.lower().rstrip('.')
        return any(hostname == domain or hostname.endswith('.' + domain) for domain in self.__domains)


def normalize_domains(domains: Iterable[str]) -> Tuple[str, ...]:
    if isinstance(domains, str):
        domains = [domains]
    return tuple(domain.strip().lower().strip('.') for domain in domains if domain.strip().strip('.'))
