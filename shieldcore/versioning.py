from __future__ import annotations

import datetime
import logging
import random

from shieldcore import options
from shieldcore import session
from shieldcore import version

logger = logging.getLogger(__name__)


def initialize_versioning(
    opts: options.Options,
    sess: session.Session,
    current: str = version.VERSION,
) -> None:
    """
    Work out whether this is a fresh install, an upgrade or a plain restart,
    and record the outcome in the session.

    Users upgrading from the legacy major version keep the expert view and
    have smart blocking turned off.
    """
    previous = opts.previous_version
    if not previous:
        logger.info(f"New install of {current}")
        sess.just_installed = True
        opts.update(
            previous_version=current,
            version_history=[current],
            install_date=datetime.date.today().isoformat(),
            install_random_number=random.randint(1, 100),
        )
        return

    sess.just_installed = False
    sess.just_upgraded = previous != current
    if not sess.just_upgraded:
        logger.debug(f"Running {current}, same as last time")
        return

    logger.info(f"Upgrade from {previous} to {current}")
    prev, cur = version.parse(previous), version.parse(current)
    if prev[:2] == cur[:2]:
        sess.hotfix = True
    if prev[0] <= version.LEGACY_MAJOR:
        sess.upgraded_from_legacy = True
        opts.update(is_expert=True, enable_smart_block=False)

    history = list(opts.version_history)
    if not history or history[-1] != current:
        history.append(current)
    opts.update(previous_version=current, version_history=history)
