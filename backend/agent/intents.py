"""
Keyword rules mapping a free-text console instruction to one operation.

Matching runs on lowercased, accent-free text and the first rule that
matches wins. Instructions may be written in French or English.
"""
import re
import unicodedata

ACTIONS = [
    'distribute_orders',
    'distribute_to_delivery',
    'create_followups',
    'stock_alerts',
    'client_analysis',
    'global_performance',
    'action_plan',
    'help',
]

_HELP_WORDS = ('help', 'aide', 'commandes disponibles', 'que sais-tu')
_DISTRIBUTE_WORDS = ('distribu', 'repartir', 'repartis', 'reparti', 'assign', 'dispatch', 'attribu')
_DELIVERY_WORDS = ('livreur', 'livraison', 'deliver', 'driver', 'courier')
_SEND_WORDS = ('envoi', 'envoy', 'send') + _DISTRIBUTE_WORDS
_FOLLOWUP_WORDS = ('relance', 'follow', 'rappel')
_STOCK_WORDS = ('stock', 'rupture', 'reappro', 'inventory')
_CLIENT_WORDS = ('client', 'segment', 'customer')
_PERFORMANCE_WORDS = ('perform', 'diagnostic', 'score', 'bilan', 'how are we doing', 'comment va')
_PLAN_WORDS = ('plan', 'priorit', 'quoi faire', 'what should')

_FOLLOWUP_TYPES = [
    (('paiement', 'payment', 'partiel', 'partial'), 'partial_payment'),
    (('reprogramm', 'resched', 'report'), 'rescheduled'),
    (('retarget', 'reactiv', 'commercial'), 'retargeting'),
]
_ORDER_STATUSES = [
    (('en attente', 'pending'), 'pending'),
    (('confirm',), 'confirmed'),
    (('partiel', 'partial'), 'partial'),
    (('reporte', 'postponed'), 'reported'),
]
_SEGMENTS = [
    (('vip',), 'vip'),
    (('nouveau', 'nouvel', 'new'), 'new'),
    (('regulier', 'fidele', 'regular', 'loyal'), 'regular'),
    (('inactif', 'inactive', 'dormant'), 'inactive'),
    (('problem',), 'problematic'),
]


def normalize(text):
    """Lowercase and strip accents"""
    decomposed = unicodedata.normalize('NFKD', text or '')
    return ''.join(c for c in decomposed if not unicodedata.combining(c)).lower().strip()


def _has(text, words):
    return any(word in text for word in words)


def _pick(text, table):
    for words, value in table:
        if _has(text, words):
            return value
    return None


def _number_before(text, units):
    match = re.search(r'(\d+)\s*(?:' + '|'.join(units) + r')', text)
    return int(match.group(1)) if match else None


def _first_number(text):
    match = re.search(r'\d+', text)
    return int(match.group(0)) if match else None


def parse_instruction(instruction):
    """Return ``(action, params)`` for a console instruction"""
    text = normalize(instruction)

    if not text or _has(text, _HELP_WORDS):
        return 'help', {}

    if _has(text, _DELIVERY_WORDS) and _has(text, _SEND_WORDS):
        params = {}
        zone = re.search(r'zone\s+([\w-]+)', instruction or '', re.IGNORECASE)
        if zone:
            params['zones'] = [zone.group(1)]
        return 'distribute_to_delivery', params

    if _has(text, _DISTRIBUTE_WORDS):
        params = {}
        status = _pick(text, _ORDER_STATUSES)
        if status:
            params['filter_status'] = status
        return 'distribute_orders', params

    if _has(text, _FOLLOWUP_WORDS):
        params = {'followup_type': _pick(text, _FOLLOWUP_TYPES) or 'reminder'}
        days = _number_before(text, ['jours?', 'days?', 'j\\b'])
        if days is not None:
            params['days_since_order'] = days
        status = _pick(text, _ORDER_STATUSES)
        if status:
            params['filter_status'] = status
        return 'create_followups', params

    if _has(text, _STOCK_WORDS):
        params = {'action': 'alert' if re.search(r'\b(cree|creer|create|genere|generate)', text) else 'list'}
        threshold = _first_number(text)
        if threshold is not None:
            params['threshold'] = threshold
        return 'stock_alerts', params

    if _has(text, _PERFORMANCE_WORDS):
        return 'global_performance', {}

    if _has(text, _PLAN_WORDS):
        return 'action_plan', {'period': 'week' if _has(text, ('semaine', 'week')) else 'today'}

    if _has(text, _CLIENT_WORDS) or _pick(text, _SEGMENTS):
        params = {}
        segment = _pick(text, _SEGMENTS)
        if segment:
            params['segment'] = segment
        min_orders = _number_before(text, ['commandes?', 'orders?'])
        if min_orders is not None:
            params['min_orders'] = min_orders
        return 'client_analysis', params

    return 'help', {}
