from notify.mailer import Mailer

__all__ = ["Mailer"]
