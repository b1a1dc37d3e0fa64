"""webstack · Cron-Verwaltung für den WebStack-Host.

Hält die Job-Metadaten unter /etc/webstack/cron synchron mit der
Root-Crontab und den webstack*-Systemd-Timern.
"""

__version__ = "0.4.0"
