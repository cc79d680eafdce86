"""
Location Relay — ретрансляция геолокации водителей подписчикам.

Обеспечивает:
- Журнал событий геолокации по каждому водителю (упорядочен по времени)
- Реестр подписчиков с отметкой "since"
- Live-доставку новых событий подходящим подписчикам
- Догрузку истории при подключении нового подписчика
"""

__version__ = "1.0.0"
