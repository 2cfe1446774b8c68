import logging

from klondike.Core import SUITS, TABLEAU_COUNT, WASTE, Core, FoundationPile, Move, TableauPile
from klondike.Interface import Interface
from klondike.settings_store import load_settings, to_game_config
from solver.analyzer import limits_from_settings


class CommandLineInterface(Interface):

    def printAll(self):
        state = self.core.state
        waste = state.waste[-1].gameStr() if state.waste else "   "
        print(f"Moves: {state.moves}        Stock: {len(state.stock)}    Waste: {waste}")
        foundations = "  ".join(
            state.foundation(suit)[-1].gameStr() if state.foundation(suit) else "[ ]" for suit in SUITS
        )
        print(f"Foundations: {foundations}")
        print("-" + "".join(f"--t{i}--" for i in range(TABLEAU_COUNT)))
        i = 0
        while True:
            has = False
            line = ""
            for pile in state.tableaus:
                if len(pile) <= i:
                    line += "      "
                    continue
                has = True
                line += f"{pile[i].gameStr():>5} "
            if not has:
                break
            print(f"{i:>2}" + line)
            i += 1
        print()

    def onStart(self):
        print("Game started!")
        self.printAll()

    def notifyRedraw(self):
        self.printAll()

    def onWin(self):
        print("You win!")


def parseMove(core: Core, parts):
    """
    mv <src> <dest> [n]: src is w or t0..t6, dest is t0..t6 or f.
    n is the card index a tableau sub-stack starts at, default the top card.
    """
    srcStr, destStr = parts[0], parts[1]
    state = core.state
    if srcStr == "w":
        src = WASTE
        cardIndex = len(state.waste) - 1
        pile = state.waste
    elif srcStr.startswith("t"):
        src = TableauPile(int(srcStr[1:]))
        pile = state.tableaus[src.index]
        cardIndex = int(parts[2]) if len(parts) > 2 else len(pile) - 1
    else:
        raise ValueError(srcStr)
    if destStr == "f":
        if not 0 <= cardIndex < len(pile):
            raise ValueError(destStr)
        dest = FoundationPile(pile[cardIndex].suit)
    elif destStr.startswith("t"):
        dest = TableauPile(int(destStr[1:]))
    else:
        raise ValueError(destStr)
    return Move(src, cardIndex, dest)


def main():
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(message)s")
    interface = CommandLineInterface()
    core = Core()
    core.registerInterface(interface)
    settings = load_settings()
    core.startGame(to_game_config(settings))
    while not core.state.won:
        command = input("> ").strip()
        if command.startswith("mv"):
            try:
                move = parseMove(core, command.split()[1:])
            except (IndexError, ValueError):
                print("Invalid pile!")
                continue
            if not core.askMove(move.src, move.cardIndex, move.dest):
                print("Cannot move!")
        elif command.startswith("draw"):
            if not core.askDraw():
                print("No card left!")
        elif command.startswith("auto"):
            if core.askAutoMoveAll() == 0:
                print("Nothing to play!")
        elif command.startswith("undo"):
            if not core.askUndo():
                print("Cannot undo!")
        elif command.startswith("redo"):
            if not core.askRedo():
                print("Cannot redo!")
        elif command.startswith("solve"):
            print("Solving...")
            if core.askSolve(limits_from_settings(settings)) is None:
                print("No solution found.")
            elif not core.replaySolution():
                print("Solver move failed to execute!")
        elif command.startswith("quit"):
            break
        else:
            print("Invalid command!")
    core.shutdown()


if __name__ == '__main__':
    main()
