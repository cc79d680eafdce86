"""
Ядро ретрансляции: журнал событий, реестр подписчиков, доставка,
история для новых подписчиков и жизненный цикл сессий.
"""
