"""Reusable assembly procedures.

Each ``def_*`` function appends a labelled routine ending in ``ret``; call
it with ``Assembler.call``. The caller must have run ``init_sp``. All
routines clobber ``tmp``.
"""

from .assembler import Assembler
from .register_file import Reg

# RAM scratch cells used by itoa and print.
ITOA_NUM = 100
ITOA_STR_PTR = 101
ITOA_POWERS_OF_10 = 102
PRINT_CHAR = 100


def def_division(asm: Assembler, procedure_name: str, dst: Reg, a: Reg, b: Reg) -> None:
    """dst = a // b, a = a % b."""
    asm.label(procedure_name).inline_div(dst, a, b, procedure_name).ret()


def def_is_power_of_two(asm: Assembler, procedure_name: str, n: Reg) -> None:
    """n = 1 if n has exactly one bit set, else 0. Clobbers r3 and r4."""
    iter_, count = Reg.R3, Reg.R4
    if n in (iter_, count, Reg.TMP):
        raise ValueError(f"{procedure_name}: n must not be r3, r4 or tmp")

    loop_label = f"{procedure_name}_loop"
    not_power_label = f"{procedure_name}_is_not_power_of_two"
    end_label = f"{procedure_name}_end"

    # count the bits set in n
    (
        asm.label(procedure_name)
        .set(count, 0)
        .set(iter_, 0)
        .label(loop_label)
        .set(Reg.TMP, 1)
        .and_(Reg.TMP, n, Reg.TMP)
        .add(count, count, Reg.TMP)
        .set(Reg.TMP, 1)
        .shr(n, n, Reg.TMP)
        .inc(iter_)
        .set(Reg.TMP, 16)
        .cmp(iter_, Reg.TMP)
        .jump_if_ne(loop_label)
        .set(Reg.TMP, 1)
        .cmp(count, Reg.TMP)
        .jump_if_ne(not_power_label)
        .set(n, 1)
        .jmp(end_label)
        .label(not_power_label)
        .set(n, 0)
        .label(end_label)
        .ret()
    )


def def_itoa(asm: Assembler) -> None:
    """Write r1 as a NUL-terminated decimal string at the address in r2.

    Clobbers r1-r4. Uses RAM cells 100-106 as scratch.
    """
    r1, r2, r3, r4, tmp, z = Reg.R1, Reg.R2, Reg.R3, Reg.R4, Reg.TMP, Reg.Z

    asm.label("itoa")
    asm.store(r1, z, ITOA_NUM)
    asm.store(r2, z, ITOA_STR_PTR)

    # powers of ten table
    asm.set(r1, ITOA_POWERS_OF_10)
    for i, power in enumerate((10_000, 1000, 100, 10, 1)):
        asm.setw(r2, power, tmp)
        asm.store(r2, r1, i)

    # zero prints as "0"
    asm.load(r1, z, ITOA_NUM)
    asm.cmp(r1, z)
    asm.jump_if_ne("itoa_not_zero")
    asm.load(r2, z, ITOA_STR_PTR)
    asm.set(tmp, ord("0"))
    asm.store(tmp, r2, 0)
    asm.store(z, r2, 1)
    asm.ret()

    # r1: power index, r2: output position, r4: digit
    asm.label("itoa_not_zero")
    asm.set(r1, 0)
    asm.set(r2, 0)
    asm.label("itoa_main_loop")
    asm.set(tmp, 5)
    asm.cmp(r1, tmp)
    asm.jump_if_eq("itoa_end_main_loop")
    asm.set(r4, 0)

    asm.label("itoa_while_num_ge_power")
    asm.load(r3, r1, ITOA_POWERS_OF_10)
    asm.load(tmp, z, ITOA_NUM)
    asm.cmp(tmp, r3)
    asm.jmpnc("itoa_end_while_num_ge_power")
    asm.load(tmp, z, ITOA_NUM)
    asm.sub(tmp, tmp, r3)
    asm.store(tmp, z, ITOA_NUM)
    asm.inc(r4)
    asm.jmp("itoa_while_num_ge_power")

    asm.label("itoa_end_while_num_ge_power")
    asm.inc(r1)

    # skip leading zeros
    asm.update_flags(r2)
    asm.jmpnz("itoa_append_digit")
    asm.update_flags(r4)
    asm.jmpnz("itoa_append_digit")
    asm.jmp("itoa_main_loop")

    asm.label("itoa_append_digit")
    asm.load(r3, z, ITOA_STR_PTR)
    asm.add(r3, r3, r2)
    asm.set(tmp, ord("0"))
    asm.add(tmp, tmp, r4)
    asm.store(tmp, r3, 0)
    asm.inc(r2)
    asm.jmp("itoa_main_loop")

    asm.label("itoa_end_main_loop")
    asm.load(r1, z, ITOA_STR_PTR)
    asm.add(r1, r1, r2)
    asm.store(z, r1, 0)
    asm.ret()


def def_print(asm: Assembler) -> None:
    """Copy the NUL-terminated string at r1 to the tiles starting at index r2.

    Clobbers r1-r4. Uses RAM cell 100 as scratch.
    """
    r1, r2, r3, r4, tmp, z = Reg.R1, Reg.R2, Reg.R3, Reg.R4, Reg.TMP, Reg.Z

    asm.label("print")
    # r4 = 0xffff, the display port
    asm.set(r4, 0)
    asm.dec(r4)

    asm.label("print_loop")
    asm.load(r3, r1, 0)
    asm.store(r3, z, PRINT_CHAR)
    asm.cmp(r3, z)
    asm.jmpz("print_end")

    # select the tile
    asm.setw(r3, 0x8000, tmp)
    asm.add(r3, r3, r2)
    asm.store(r3, r4, 0)
    asm.inc(r2)

    # write the character
    asm.load(r3, z, PRINT_CHAR)
    asm.store(r3, r4, 0)
    asm.inc(r1)
    asm.jmp("print_loop")

    asm.label("print_end")
    asm.ret()
