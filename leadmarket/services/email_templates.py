"""
Minimal transactional email bodies.

Rich rendering lives with the frontend team; these produce a subject and a
plain HTML body for each event the core sends. All user values are escaped.
"""
from datetime import datetime
from html import escape
from typing import Optional, Tuple

from leadmarket.core.plans import get_plan_name

Email = Tuple[str, str]


def _wrap(content: str) -> str:
    return (
        '<!DOCTYPE html><html><head><meta charset="UTF-8"></head>'
        '<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        '<div style="background: #0066CC; color: white; padding: 20px; text-align: center;">'
        '<h1 style="margin: 0;">BÜEZE.CH</h1></div>'
        f'<div style="padding: 30px;">{content}</div>'
        '</body></html>'
    )


def _button(link: str, label: str) -> str:
    return (
        f'<p style="text-align: center; margin: 30px 0;"><a href="{escape(link, quote=True)}" '
        'style="background: #0066CC; color: white; padding: 12px 30px; text-decoration: none; '
        f'border-radius: 5px;">{escape(label)}</a></p>'
    )


def _date(moment: Optional[datetime]) -> str:
    return moment.strftime("%d.%m.%Y") if moment else "-"


def _budget(budget_min: Optional[int], budget_max: Optional[int]) -> str:
    if budget_min is None and budget_max is None:
        return "Nicht angegeben"
    return f"CHF {budget_min or 0:,} - {budget_max or 0:,}".replace(",", "'")


def new_lead(provider_name: str, lead, link: str) -> Email:
    subject = f"Neue Anfrage in {lead.category} - {lead.city or lead.postal_code}"
    body = (
        f"<h2>Hallo {escape(provider_name)}</h2>"
        f"<p>Es gibt eine neue Anfrage in Ihrem Einzugsgebiet:</p>"
        f"<h3>{escape(lead.title)}</h3>"
        f"<p><strong>Ort:</strong> {escape(lead.postal_code)} {escape(lead.city or '')} ({escape(lead.canton)})<br>"
        f"<strong>Budget:</strong> {_budget(lead.budget_min, lead.budget_max)}<br>"
        f"<strong>Frist:</strong> {_date(lead.proposal_deadline)}</p>"
        + _button(link, "Anfrage ansehen")
    )
    return subject, _wrap(body)


def proposal_received(owner_name: str, lead, link: str) -> Email:
    subject = f"Neue Offerte für \"{lead.title}\""
    body = (
        f"<h2>Hallo {escape(owner_name)}</h2>"
        f"<p>Sie haben eine neue Offerte für <strong>{escape(lead.title)}</strong> erhalten.</p>"
        + _button(link, "Offerte ansehen")
    )
    return subject, _wrap(body)


def proposal_accepted_provider(provider_name: str, lead, owner, link: str) -> Email:
    subject = f"Ihre Offerte für \"{lead.title}\" wurde angenommen"
    body = (
        f"<h2>Gratulation, {escape(provider_name)}!</h2>"
        f"<p>Ihre Offerte für <strong>{escape(lead.title)}</strong> wurde angenommen.</p>"
        f"<p><strong>Kontakt:</strong> {escape(owner.display_name)}<br>"
        f"E-Mail: {escape(owner.email)}<br>Telefon: {escape(owner.phone or '-')}</p>"
        + _button(link, "Nachricht senden")
    )
    return subject, _wrap(body)


def proposal_accepted_owner(owner_name: str, lead, provider) -> Email:
    subject = f"Sie haben eine Offerte für \"{lead.title}\" angenommen"
    body = (
        f"<h2>Hallo {escape(owner_name)}</h2>"
        f"<p>Sie haben eine Offerte angenommen. Hier die Kontaktdaten des Handwerkers:</p>"
        f"<p>{escape(provider.display_name)}<br>E-Mail: {escape(provider.email)}<br>"
        f"Telefon: {escape(provider.phone or '-')}</p>"
    )
    return subject, _wrap(body)


def proposal_rejected(provider_name: str, lead) -> Email:
    subject = f"Update zu Ihrer Offerte für \"{lead.title}\""
    body = (
        f"<h2>Hallo {escape(provider_name)}</h2>"
        f"<p>Der Auftraggeber hat sich für <strong>{escape(lead.title)}</strong> anders entschieden. "
        "Das ist kein Urteil über die Qualität Ihrer Offerte; oft geben Termin oder "
        "persönliche Präferenzen den Ausschlag.</p>"
        "<p>Neue passende Anfragen senden wir Ihnen weiterhin zu.</p>"
    )
    return subject, _wrap(body)


def opportunity_closed(provider_name: str, lead) -> Email:
    subject = f"Anfrage \"{lead.title}\" ist abgelaufen"
    body = (
        f"<h2>Hallo {escape(provider_name)}</h2>"
        f"<p>Die Angebotsfrist für <strong>{escape(lead.title)}</strong> ist abgelaufen. "
        "Ihre Offerte wurde zurückgezogen.</p>"
    )
    return subject, _wrap(body)


def lead_expired(owner_name: str, lead, link: str) -> Email:
    subject = f"Angebotsfrist für \"{lead.title}\" abgelaufen"
    body = (
        f"<h2>Hallo {escape(owner_name)}</h2>"
        f"<p>Die Angebotsfrist für <strong>{escape(lead.title)}</strong> ist abgelaufen.</p>"
        + _button(link, "Zum Dashboard")
    )
    return subject, _wrap(body)


def deadline_owner_reminder(owner_name: str, lead, pending_count: int, link: str) -> Email:
    noun = "Offerte wartet" if pending_count == 1 else "Offerten warten"
    subject = f"Erinnerung: {pending_count} {noun} auf Ihre Antwort"
    body = (
        f"<h2>Hallo {escape(owner_name)}</h2>"
        f"<p>Für <strong>{escape(lead.title)}</strong> liegen {pending_count} {noun.split()[0]} vor.</p>"
        f"<p>Frist: {_date(lead.proposal_deadline)}</p>"
        + _button(link, "Offerten ansehen")
    )
    return subject, _wrap(body)


def deadline_provider_nudge(provider_name: str, lead, link: str) -> Email:
    subject = f"Letzte Chance: Offerte für \"{lead.title}\" einreichen"
    body = (
        f"<h2>Letzte Chance, {escape(provider_name)}!</h2>"
        f"<p>Sie haben sich <strong>{escape(lead.title)}</strong> angesehen, aber noch keine Offerte eingereicht.</p>"
        f"<p>Frist: {_date(lead.proposal_deadline)}</p>"
        + _button(link, "Jetzt Offerte einreichen")
    )
    return subject, _wrap(body)


def subscription_confirmed(name: str, plan_type: str, period_end: datetime) -> Email:
    plan = get_plan_name(plan_type)
    subject = f"Ihr {plan} Abonnement ist aktiv"
    body = (
        f"<h2>Hallo {escape(name)}</h2>"
        f"<p>Vielen Dank für Ihre Zahlung. Ihr <strong>{escape(plan)}</strong> Abonnement ist aktiv "
        f"bis {_date(period_end)}. Sie können nun unbegrenzt Offerten einreichen.</p>"
    )
    return subject, _wrap(body)


def payment_failed(name: str, plan_type: str, link: str) -> Email:
    subject = "Zahlung fehlgeschlagen"
    body = (
        f"<h2>Hallo {escape(name)}</h2>"
        f"<p>Ihre Zahlung für das {escape(get_plan_name(plan_type))} Abonnement konnte nicht verarbeitet werden.</p>"
        + _button(link, "Erneut versuchen")
    )
    return subject, _wrap(body)


def subscription_expired(name: str, plan_type: str, link: str) -> Email:
    plan = get_plan_name(plan_type)
    subject = f"Ihr {plan} Abonnement ist abgelaufen"
    body = (
        f"<h2>Hallo {escape(name)}</h2>"
        f"<p>Ihr <strong>{escape(plan)}</strong> Abonnement ist abgelaufen. "
        "Sie wurden auf den kostenlosen Plan umgestellt.</p>"
        + _button(link, "Abonnement erneuern")
    )
    return subject, _wrap(body)


def subscription_expiring(name: str, plan_type: str, period_end: datetime, link: str) -> Email:
    plan = get_plan_name(plan_type)
    subject = f"Ihr {plan} Abonnement läuft in 7 Tagen ab"
    body = (
        f"<h2>Hallo {escape(name)}</h2>"
        f"<p>Ihr <strong>{escape(plan)}</strong> Abonnement läuft am {_date(period_end)} ab.</p>"
        + _button(link, "Jetzt verlängern")
    )
    return subject, _wrap(body)


def payment_reminder(name: str, plan_type: str, link: str, final: bool = False) -> Email:
    plan = get_plan_name(plan_type)
    if final:
        subject = "Letzte Erinnerung: Aktivieren Sie Ihr Abo"
        intro = f"Ihr gewähltes <strong>{escape(plan)}</strong> Abonnement ist noch nicht bezahlt."
    else:
        subject = "Vergessen? Ihr Abo wartet auf Sie"
        intro = f"Sie haben das <strong>{escape(plan)}</strong> Abonnement gewählt, die Zahlung fehlt aber noch."
    body = (
        f"<h2>Hallo {escape(name)}</h2>"
        f"<p>{intro}</p>"
        + _button(link, "Jetzt bezahlen und starten")
        + "<p>Oder starten Sie kostenlos mit 5 Offerten pro Monat.</p>"
    )
    return subject, _wrap(body)


def rating_reminder(owner_name: str, lead, provider_name: str, link: str) -> Email:
    subject = f"Wie war {provider_name}? Ihre Bewertung zählt!"
    body = (
        f"<h2>Hallo {escape(owner_name)}</h2>"
        f"<p>Vor einer Woche haben Sie für <strong>{escape(lead.title)}</strong> die Offerte von "
        f"{escape(provider_name)} angenommen. Wie zufrieden waren Sie?</p>"
        + _button(link, "Jetzt bewerten")
        + "<p>Die Bewertung dauert nur 1-2 Minuten.</p>"
    )
    return subject, _wrap(body)
