""" Correction of a known identifier-encoding quirk in inbound records. Some
    records arrive with their 24 character hexadecimal object identifier
    prefixed by a stray '-' character; the functions here strip that marker
    without otherwise touching the record.
"""

import re

marker = '-'
pattern = re.compile('[0-9A-Fa-f]{24}')

slots = ('added', 'changed', 'removed')


def fix_id(record):
    """ Return a copy of *record* with a corrected 'id' field if the
        identifier is exactly 25 characters, begins with the marker, and the
        remaining 24 characters are hexadecimal. In every other case the
        original *record* is returned as-is; this function never raises.

        Applying :func:`fix_id` to an already corrected record is a no-op,
        the corrected identifier is only 24 characters long.
    """

    if isinstance(record, dict):
        id = record.get('id')
    else:
        return record

    if isinstance(id, str):
        pass
    else:
        return record

    if len(id) != 25 or id[0] != marker:
        return record

    stripped = id[1:]

    if pattern.fullmatch(stripped) is None:
        return record

    fixed = dict(record)
    fixed['id'] = stripped
    return fixed


def fix_delta(delta):
    """ Apply :func:`fix_id` to each of the three slots of a collection
        *delta*. The returned dictionary always carries all three keys; an
        absent slot is passed through as None. The 'changed' slot carries
        the previous and next versions of the record, and both of those
        are corrected as well.
    """

    if delta is None:
        delta = dict()

    fixed = dict()
    fixed['added'] = fix_id(delta.get('added'))
    fixed['removed'] = fix_id(delta.get('removed'))

    changed = delta.get('changed')

    if isinstance(changed, dict) and ('prev' in changed or 'next' in changed):
        changed = dict(changed)
        for key in ('prev', 'next'):
            if key in changed:
                changed[key] = fix_id(changed[key])

    fixed['changed'] = fix_id(changed)
    return fixed


def present(delta):
    """ Return the list of slot names present in *delta*, in the fixed
        order 'added', 'changed', 'removed'. A slot counts as present
        unless it is missing or None; an empty record is still present.
    """

    actions = list()

    for slot in slots:
        if delta.get(slot) is not None:
            actions.append(slot)

    return actions


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
