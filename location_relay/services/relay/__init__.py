"""
Location Relay — сервис ретрансляции геолокации водителей.

Обеспечивает:
- Приём геолокации через вебхук (HTTP)
- Журнал событий по водителю в Redis
- Подписку клиентов по WebSocket с отметкой since
- Догрузку истории одной пачкой и live-доставку новых событий
"""
