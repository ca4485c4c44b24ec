"""
Disposable / temporary email provider detection.
"""

from spamdetective.utils.preprocessing import get_email_domain

DISPOSABLE_DOMAINS = frozenset({
    "10minutemail.com", "10minutemail.net", "20minutemail.com", "33mail.com",
    "anonbox.net", "anonymbox.com", "armyspy.com", "bccto.me", "binkmail.com",
    "bobmail.info", "burnermail.io", "chacuo.net", "cuvox.de", "dayrep.com",
    "deadaddress.com", "discard.email", "discardmail.com", "disposableemailaddresses.com",
    "dispostable.com", "dodgit.com", "dropmail.me", "einrot.com", "emailondeck.com",
    "emailtemporanea.net", "fakeinbox.com", "fakemail.net", "fleckens.hu", "getairmail.com",
    "getnada.com", "gishpuppy.com", "guerrillamail.biz", "guerrillamail.com",
    "guerrillamail.de", "guerrillamail.info", "guerrillamail.net", "guerrillamail.org",
    "guerrillamailblock.com", "gustr.com", "harakirimail.com", "incognitomail.org",
    "inboxbear.com", "jetable.org", "jourrapide.com", "kasmail.com", "klzlk.com",
    "mailcatch.com", "maildrop.cc", "mailexpire.com", "mailforspam.com", "mailinator.com",
    "mailinator.net", "mailinator2.com", "mailnesia.com", "mailnull.com", "mailpoof.com",
    "mailsac.com", "mailtemp.info", "meltmail.com", "mintemail.com", "moakt.com",
    "mohmal.com", "mt2015.com", "mytemp.email", "mytrashmail.com", "nada.email",
    "neverbox.com", "no-spam.ws", "nowmymail.com", "objectmail.com", "one-time.email",
    "owlymail.com", "rhyta.com", "rmqkr.net", "sharklasers.com", "shieldemail.com",
    "sogetthis.com", "spam4.me", "spambog.com", "spambox.us", "spamgourmet.com",
    "spamherelots.com", "spamhole.com", "spaml.com", "superrito.com", "teleworm.us",
    "temp-mail.io", "temp-mail.org", "tempail.com", "tempinbox.com", "tempmail.com",
    "tempmail.dev", "tempmail.net", "tempmailaddress.com", "tempmailo.com", "tempr.email",
    "throwam.com", "throwawaymail.com", "tmail.ws", "tmpmail.net", "tmpmail.org",
    "trash-mail.com", "trashmail.com", "trashmail.de", "trashmail.me", "trashmail.net",
    "trbvm.com", "wegwerfmail.de", "wegwerfmail.net", "yopmail.com", "yopmail.fr",
    "yopmail.net", "zetmail.com", "zippymail.info",
})


def is_disposable_domain(domain: str) -> bool:
    """Exact match, or any parent domain is a known provider (mx.mailinator.com)."""
    domain = (domain or "").strip().lower().rstrip(".")
    if not domain:
        return False
    labels = domain.split(".")
    return any(".".join(labels[i:]) in DISPOSABLE_DOMAINS for i in range(len(labels) - 1))


def is_disposable(email: str) -> bool:
    return is_disposable_domain(get_email_domain(email))


def domain_count() -> int:
    return len(DISPOSABLE_DOMAINS)
