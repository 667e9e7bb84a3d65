"""fssh Meta information.
   fssh serves SSH agent signatures from private keys encrypted at rest,
   released by Touch ID or password + one-time code.
"""
__title__ = 'fssh'
__description__ = (
   'SSH agent that keeps private keys encrypted at rest and unlocks them '
   'with Touch ID or password + TOTP.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 fssh contributors'
__author__ = 'fssh contributors'
__license__ = 'Apache-2.0'
